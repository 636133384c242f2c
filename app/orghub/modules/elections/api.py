from __future__ import annotations

from flask import Blueprint, jsonify, request

from app.orghub.db import db_session
from app.orghub.errors import BadRequest
from app.orghub.modules.elections.models import Election
from app.orghub.modules.elections.service import (
    VALID_STATUSES,
    add_candidate,
    candidate_to_dict,
    cast_vote,
    count_votes,
    create_election,
    delete_candidate,
    delete_election,
    election_results,
    election_to_dict,
    get_candidate,
    get_election,
    has_voted,
    list_candidates,
    update_candidate,
    update_election,
)
from app.orghub.permissions import ELECTIONS_WRITE
from app.orghub.rbac import current_auth, require_auth
from app.orghub.utils import (
    clean_str,
    json_body,
    optional_str,
    page_args,
    paginate,
    parse_bool,
    parse_datetime,
    parse_int,
    pick,
    require_str,
)

bp = Blueprint("elections", __name__)


def _optional_int(body: dict, *names: str) -> int | None:
    v = pick(body, *names)
    if v is None or v == "":
        return None
    return parse_int(v, names[0])


def _optional_bool(body: dict, *names: str) -> bool | None:
    v = pick(body, *names)
    if v is None:
        return None
    return parse_bool(v, names[0])


def _optional_datetime(body: dict, *names: str):
    v = pick(body, *names)
    if v is None or v == "":
        return None
    return parse_datetime(v, names[0])


def _candidate_payloads(raw) -> list[dict]:
    if raw is None:
        return []
    if not isinstance(raw, list) or not all(isinstance(c, dict) for c in raw):
        raise BadRequest("candidates must be a list of objects.")
    return [
        {
            "name": c.get("name"),
            "description": c.get("description"),
            "photo_url": pick(c, "photoUrl", "photo_url"),
            "position": c.get("position"),
        }
        for c in raw
    ]


@bp.get("")
@require_auth()
def elections_list():
    ctx = current_auth()
    s = db_session()
    after_id, limit = page_args()
    q = (request.args.get("q") or "").strip()
    status = (request.args.get("status") or "").strip()

    query = s.query(Election).filter(Election.organization_id == ctx.organization_id)
    if q:
        like = f"%{q}%"
        query = query.filter((Election.title.ilike(like)) | (Election.description.ilike(like)))
    if status:
        if status not in VALID_STATUSES:
            raise BadRequest(f"Invalid status: {status}")
        query = query.filter(Election.status == status)

    page = paginate(query, Election.id, after_id=after_id, limit=limit)
    items = [
        election_to_dict(
            e,
            total_votes=count_votes(s, election_id=e.id),
            has_voted=has_voted(s, e.id, ctx.user.id),
        )
        for e in page.items
    ]
    return jsonify({"items": items, "nextCursor": page.next_cursor})


@bp.get("/<int:election_id>")
@require_auth()
def elections_detail(election_id: int):
    ctx = current_auth()
    s = db_session()
    election = get_election(s, election_id, ctx.organization_id)
    return jsonify(
        election_to_dict(
            election,
            candidates=list_candidates(s, election.id),
            total_votes=count_votes(s, election_id=election.id),
            has_voted=has_voted(s, election.id, ctx.user.id),
        )
    )


@bp.post("")
@require_auth(ELECTIONS_WRITE)
def elections_create():
    ctx = current_auth()
    s = db_session()
    body = json_body()

    start_date = _optional_datetime(body, "startDate", "start_date")
    end_date = _optional_datetime(body, "endDate", "end_date")
    if start_date is None or end_date is None:
        raise BadRequest("startDate and endDate are required.")

    election = create_election(
        s,
        organization_id=ctx.organization_id,
        user=ctx.user,
        title=require_str(body, "title"),
        election_type=require_str(body, "type"),
        start_date=start_date,
        end_date=end_date,
        description=clean_str(body.get("description")),
        allow_multiple=bool(_optional_bool(body, "allowMultiple", "allow_multiple")),
        max_votes=_optional_int(body, "maxVotes", "max_votes"),
        is_anonymous=bool(_optional_bool(body, "isAnonymous", "is_anonymous")),
        status=clean_str(body.get("status")) or "draft",
        candidates=_candidate_payloads(body.get("candidates")),
    )
    s.commit()
    return jsonify(election_to_dict(election, candidates=list_candidates(s, election.id), total_votes=0)), 201


@bp.put("/<int:election_id>")
@require_auth(ELECTIONS_WRITE)
def elections_update(election_id: int):
    ctx = current_auth()
    s = db_session()
    body = json_body()
    election = get_election(s, election_id, ctx.organization_id)

    update_election(
        s,
        election,
        user=ctx.user,
        title=optional_str(body, "title"),
        description=optional_str(body, "description"),
        election_type=optional_str(body, "type"),
        start_date=_optional_datetime(body, "startDate", "start_date"),
        end_date=_optional_datetime(body, "endDate", "end_date"),
        allow_multiple=_optional_bool(body, "allowMultiple", "allow_multiple"),
        max_votes=_optional_int(body, "maxVotes", "max_votes"),
        is_anonymous=_optional_bool(body, "isAnonymous", "is_anonymous"),
        status=clean_str(body.get("status")),
    )
    s.commit()
    return jsonify(election_to_dict(election, candidates=list_candidates(s, election.id)))


@bp.delete("/<int:election_id>")
@require_auth(ELECTIONS_WRITE)
def elections_delete(election_id: int):
    ctx = current_auth()
    s = db_session()
    election = get_election(s, election_id, ctx.organization_id)
    delete_election(s, election, user=ctx.user)
    s.commit()
    return "", 204


@bp.post("/<int:election_id>/candidates")
@require_auth(ELECTIONS_WRITE)
def candidates_create(election_id: int):
    ctx = current_auth()
    s = db_session()
    body = json_body()
    election = get_election(s, election_id, ctx.organization_id)
    c = add_candidate(
        s,
        election,
        user=ctx.user,
        name=clean_str(body.get("name")) or "",
        description=clean_str(body.get("description")),
        photo_url=clean_str(pick(body, "photoUrl", "photo_url")),
        position=clean_str(body.get("position")),
    )
    s.commit()
    return jsonify(candidate_to_dict(c)), 201


@bp.put("/<int:election_id>/candidates/<int:candidate_id>")
@require_auth(ELECTIONS_WRITE)
def candidates_update(election_id: int, candidate_id: int):
    ctx = current_auth()
    s = db_session()
    body = json_body()
    election = get_election(s, election_id, ctx.organization_id)
    c = get_candidate(s, election, candidate_id)
    update_candidate(
        s,
        c,
        user=ctx.user,
        name=optional_str(body, "name"),
        description=optional_str(body, "description"),
        photo_url=optional_str(body, "photoUrl", "photo_url"),
        position=optional_str(body, "position"),
    )
    s.commit()
    return jsonify(candidate_to_dict(c))


@bp.delete("/<int:election_id>/candidates/<int:candidate_id>")
@require_auth(ELECTIONS_WRITE)
def candidates_delete(election_id: int, candidate_id: int):
    ctx = current_auth()
    s = db_session()
    election = get_election(s, election_id, ctx.organization_id)
    c = get_candidate(s, election, candidate_id)
    delete_candidate(s, c, user=ctx.user)
    s.commit()
    return "", 204


@bp.post("/<int:election_id>/vote")
@require_auth()
def elections_vote(election_id: int):
    ctx = current_auth()
    s = db_session()
    body = json_body()
    raw = pick(body, "candidateIds", "candidate_ids")
    if raw is None:
        raw = []
    if not isinstance(raw, list):
        raise BadRequest("candidateIds must be a list.")
    candidate_ids = [parse_int(v, "candidateIds") for v in raw]

    votes = cast_vote(
        s,
        election_id=election_id,
        organization_id=ctx.organization_id,
        voter=ctx.user,
        candidate_ids=candidate_ids,
    )
    s.commit()
    return jsonify({"message": "Vote cast successfully", "count": len(votes)}), 201


@bp.get("/<int:election_id>/results")
@require_auth()
def elections_results(election_id: int):
    ctx = current_auth()
    s = db_session()
    election = get_election(s, election_id, ctx.organization_id)
    return jsonify(election_results(s, election))
