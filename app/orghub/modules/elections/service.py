"""
Election service layer.

Lifecycle (draft -> active -> closed), candidate management and the vote-casting
protocol. Casting writes one Ballot row plus one Vote row per chosen candidate in
a single transaction; the unique (election_id, voter_id) constraint on ballots
is what rejects a concurrent second submission from the same voter.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import exists, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.orghub.audit import record_event
from app.orghub.errors import (
    AlreadyVoted,
    BadRequest,
    Conflict,
    InvalidCandidate,
    NotFound,
    NotOpen,
    SingleChoiceOnly,
    TooManyChoices,
)
from app.orghub.utils import iso

from .models import Ballot, Candidate, Election, Vote

if TYPE_CHECKING:
    from app.orghub.models import User

logger = logging.getLogger(__name__)


STATUS_DRAFT = "draft"
STATUS_ACTIVE = "active"
STATUS_CLOSED = "closed"

VALID_STATUSES = {STATUS_DRAFT, STATUS_ACTIVE, STATUS_CLOSED}

STATUS_TRANSITIONS = {
    STATUS_DRAFT: {STATUS_ACTIVE},
    STATUS_ACTIVE: {STATUS_CLOSED},
    STATUS_CLOSED: set(),
}


# ---- data access ----


def find_election(s: Session, election_id: int, organization_id: int) -> Election | None:
    """Scoped lookup; an election of another organization is indistinguishable from a missing one."""
    return (
        s.query(Election)
        .filter(Election.id == election_id, Election.organization_id == organization_id)
        .one_or_none()
    )


def get_election(s: Session, election_id: int, organization_id: int) -> Election:
    election = find_election(s, election_id, organization_id)
    if election is None:
        raise NotFound("Election not found.")
    return election


def list_candidates(s: Session, election_id: int) -> list[Candidate]:
    return (
        s.query(Candidate)
        .filter(Candidate.election_id == election_id)
        .order_by(Candidate.display_order.asc(), Candidate.id.asc())
        .all()
    )


def get_candidate(s: Session, election: Election, candidate_id: int) -> Candidate:
    c = (
        s.query(Candidate)
        .filter(Candidate.id == candidate_id, Candidate.election_id == election.id)
        .one_or_none()
    )
    if c is None:
        raise NotFound("Candidate not found.")
    return c


def count_votes(s: Session, *, election_id: int | None = None, candidate_id: int | None = None) -> int:
    q = s.query(func.count(Vote.id))
    if election_id is not None:
        q = q.filter(Vote.election_id == election_id)
    if candidate_id is not None:
        q = q.filter(Vote.candidate_id == candidate_id)
    return int(q.scalar() or 0)


def vote_counts_by_candidate(s: Session, election_id: int) -> dict[int, int]:
    rows = (
        s.query(Vote.candidate_id, func.count(Vote.id))
        .filter(Vote.election_id == election_id)
        .group_by(Vote.candidate_id)
        .all()
    )
    return {int(cid): int(n or 0) for cid, n in rows}


def find_votes(s: Session, voter_id: int, election_id: int) -> list[Vote]:
    return (
        s.query(Vote)
        .filter(Vote.voter_id == voter_id, Vote.election_id == election_id)
        .order_by(Vote.id.asc())
        .all()
    )


def has_voted(s: Session, election_id: int, voter_id: int) -> bool:
    ballot = (
        s.query(Ballot.id)
        .filter(Ballot.election_id == election_id, Ballot.voter_id == voter_id)
        .first()
    )
    if ballot is not None:
        return True
    return bool(find_votes(s, voter_id, election_id))


def create_votes(s: Session, election: Election, voter: User, candidate_ids: list[int], *, now: datetime) -> list[Vote]:
    """
    Insert the ballot and its vote rows as one unit. The caller's transaction
    is rolled back if any insert fails, so no partial ballot is ever visible.
    """
    ballot = Ballot(election_id=election.id, voter_id=voter.id, cast_at=now)
    s.add(ballot)
    s.flush()
    votes = [
        Vote(
            election_id=election.id,
            candidate_id=cid,
            ballot_id=ballot.id,
            voter_id=voter.id,
            voter_name=voter.full_name,
            created_at=now,
        )
        for cid in candidate_ids
    ]
    s.add_all(votes)
    s.flush()
    return votes


def delete_votes_for_election(s: Session, election_id: int) -> int:
    return s.query(Vote).filter(Vote.election_id == election_id).delete(synchronize_session=False)


def delete_candidates_for_election(s: Session, election_id: int) -> int:
    return s.query(Candidate).filter(Candidate.election_id == election_id).delete(synchronize_session=False)


def delete_empty_ballots(s: Session, election_id: int) -> int:
    return (
        s.query(Ballot)
        .filter(Ballot.election_id == election_id, ~exists().where(Vote.ballot_id == Ballot.id))
        .delete(synchronize_session=False)
    )


# ---- elections ----


def _validate_window(start_date: datetime, end_date: datetime) -> None:
    if end_date <= start_date:
        raise BadRequest("endDate must be after startDate.")


def _validate_max_votes(allow_multiple: bool, max_votes: int | None) -> int | None:
    if not allow_multiple:
        return None
    if max_votes is not None and max_votes < 1:
        raise BadRequest("maxVotes must be at least 1.")
    return max_votes


def create_election(
    s: Session,
    *,
    organization_id: int,
    user: User,
    title: str,
    election_type: str,
    start_date: datetime,
    end_date: datetime,
    description: str | None = None,
    allow_multiple: bool = False,
    max_votes: int | None = None,
    is_anonymous: bool = False,
    status: str = STATUS_DRAFT,
    candidates: list[dict[str, Any]] | None = None,
) -> Election:
    """Create an election; `candidates` are appended in the given order starting at 0."""
    if status not in VALID_STATUSES:
        raise BadRequest(f"Invalid status: {status}")
    _validate_window(start_date, end_date)

    now = datetime.utcnow()
    election = Election(
        organization_id=organization_id,
        title=title.strip(),
        description=description.strip() if description else None,
        type=election_type.strip(),
        start_date=start_date,
        end_date=end_date,
        allow_multiple=allow_multiple,
        max_votes=_validate_max_votes(allow_multiple, max_votes),
        is_anonymous=is_anonymous,
        status=status,
        created_by_user_id=user.id,
        created_by_name=user.full_name,
        created_at=now,
        updated_at=now,
    )
    s.add(election)
    s.flush()

    for index, c in enumerate(candidates or []):
        name = str(c.get("name") or "").strip()
        if not name:
            raise BadRequest("Candidate name is required.")
        s.add(
            Candidate(
                election_id=election.id,
                name=name,
                description=str(c.get("description") or "").strip() or None,
                photo_url=str(c.get("photo_url") or "").strip() or None,
                position=str(c.get("position") or "").strip() or None,
                display_order=index,
            )
        )
    s.flush()
    s.refresh(election)

    record_event(
        s,
        actor=user,
        action="elections.create",
        entity_type="Election",
        entity_id=str(election.id),
        organization_id=organization_id,
        metadata={"title": election.title, "status": election.status, "candidates": len(candidates or [])},
    )
    return election


def update_election(
    s: Session,
    election: Election,
    *,
    user: User,
    title: str | None = None,
    description: str | None = None,
    election_type: str | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    allow_multiple: bool | None = None,
    max_votes: int | None = None,
    is_anonymous: bool | None = None,
    status: str | None = None,
) -> Election:
    """Partial update; only arguments that are not None are applied."""
    changes: dict[str, Any] = {}

    if status is not None and status != election.status:
        if status not in VALID_STATUSES:
            raise BadRequest(f"Invalid status: {status}")
        if status not in STATUS_TRANSITIONS.get(election.status, set()):
            raise Conflict(f"Cannot transition election from {election.status} to {status}.")
        changes["status"] = {"from": election.status, "to": status}
        election.status = status

    if title is not None and title.strip() and title.strip() != election.title:
        changes["title"] = {"from": election.title, "to": title.strip()}
        election.title = title.strip()
    if description is not None and description != election.description:
        changes["description"] = True
        election.description = description.strip() or None
    if election_type is not None and election_type.strip() and election_type.strip() != election.type:
        changes["type"] = {"from": election.type, "to": election_type.strip()}
        election.type = election_type.strip()

    new_start = start_date if start_date is not None else election.start_date
    new_end = end_date if end_date is not None else election.end_date
    if start_date is not None or end_date is not None:
        _validate_window(new_start, new_end)
        if new_start != election.start_date:
            changes["start_date"] = {"from": iso(election.start_date), "to": iso(new_start)}
            election.start_date = new_start
        if new_end != election.end_date:
            changes["end_date"] = {"from": iso(election.end_date), "to": iso(new_end)}
            election.end_date = new_end

    if allow_multiple is not None and allow_multiple != election.allow_multiple:
        changes["allow_multiple"] = {"from": election.allow_multiple, "to": allow_multiple}
        election.allow_multiple = allow_multiple
    if max_votes is not None or allow_multiple is not None:
        kept = _validate_max_votes(
            election.allow_multiple,
            max_votes if max_votes is not None else election.max_votes,
        )
        if kept != election.max_votes:
            changes["max_votes"] = {"from": election.max_votes, "to": kept}
            election.max_votes = kept
    if is_anonymous is not None and is_anonymous != election.is_anonymous:
        changes["is_anonymous"] = {"from": election.is_anonymous, "to": is_anonymous}
        election.is_anonymous = is_anonymous

    if changes:
        election.updated_at = datetime.utcnow()
        record_event(
            s,
            actor=user,
            action="elections.update",
            entity_type="Election",
            entity_id=str(election.id),
            organization_id=election.organization_id,
            metadata={"changes": changes},
        )
    return election


def delete_election(s: Session, election: Election, *, user: User) -> None:
    """Remove votes, then ballots, then candidates, then the election itself."""
    election_id = election.id
    org_id = election.organization_id
    votes = delete_votes_for_election(s, election_id)
    s.query(Ballot).filter(Ballot.election_id == election_id).delete(synchronize_session=False)
    delete_candidates_for_election(s, election_id)
    s.expunge(election)
    s.query(Election).filter(Election.id == election_id).delete(synchronize_session=False)

    record_event(
        s,
        actor=user,
        action="elections.delete",
        entity_type="Election",
        entity_id=str(election_id),
        organization_id=org_id,
        metadata={"votes_removed": votes},
    )


# ---- candidates ----


def next_display_order(s: Session, election_id: int) -> int:
    current = s.query(func.max(Candidate.display_order)).filter(Candidate.election_id == election_id).scalar()
    return 0 if current is None else int(current) + 1


def add_candidate(
    s: Session,
    election: Election,
    *,
    user: User,
    name: str,
    description: str | None = None,
    photo_url: str | None = None,
    position: str | None = None,
) -> Candidate:
    name = (name or "").strip()
    if not name:
        raise BadRequest("Candidate name is required.")
    c = Candidate(
        election_id=election.id,
        name=name,
        description=description.strip() if description else None,
        photo_url=photo_url.strip() if photo_url else None,
        position=position.strip() if position else None,
        display_order=next_display_order(s, election.id),
    )
    s.add(c)
    try:
        s.flush()
    except IntegrityError:
        s.rollback()
        raise Conflict("Candidate order collided with a concurrent insert; retry.")

    record_event(
        s,
        actor=user,
        action="elections.candidate.create",
        entity_type="Candidate",
        entity_id=str(c.id),
        organization_id=election.organization_id,
        metadata={"election_id": election.id, "name": c.name, "order": c.display_order},
    )
    return c


def update_candidate(
    s: Session,
    candidate: Candidate,
    *,
    user: User,
    name: str | None = None,
    description: str | None = None,
    photo_url: str | None = None,
    position: str | None = None,
) -> Candidate:
    changes: dict[str, Any] = {}
    if name is not None and name.strip() and name.strip() != candidate.name:
        changes["name"] = {"from": candidate.name, "to": name.strip()}
        candidate.name = name.strip()
    if description is not None and (description.strip() or None) != candidate.description:
        changes["description"] = True
        candidate.description = description.strip() or None
    if photo_url is not None and (photo_url.strip() or None) != candidate.photo_url:
        changes["photo_url"] = True
        candidate.photo_url = photo_url.strip() or None
    if position is not None and (position.strip() or None) != candidate.position:
        changes["position"] = {"from": candidate.position, "to": position.strip() or None}
        candidate.position = position.strip() or None

    if changes:
        record_event(
            s,
            actor=user,
            action="elections.candidate.update",
            entity_type="Candidate",
            entity_id=str(candidate.id),
            organization_id=candidate.election.organization_id,
            metadata={"election_id": candidate.election_id, "changes": changes},
        )
    return candidate


def delete_candidate(s: Session, candidate: Candidate, *, user: User) -> None:
    """
    Votes referencing the candidate go first, then any ballot left without a
    vote, so those voters may vote again. Display order of the rest is left untouched.
    """
    candidate_id = candidate.id
    election_id = candidate.election_id
    org_id = candidate.election.organization_id
    removed = s.query(Vote).filter(Vote.candidate_id == candidate_id).delete(synchronize_session=False)
    reopened = delete_empty_ballots(s, election_id)
    s.expunge(candidate)
    s.query(Candidate).filter(Candidate.id == candidate_id).delete(synchronize_session=False)
    record_event(
        s,
        actor=user,
        action="elections.candidate.delete",
        entity_type="Candidate",
        entity_id=str(candidate_id),
        organization_id=org_id,
        metadata={"election_id": election_id, "votes_removed": removed, "ballots_reopened": reopened},
    )


# ---- voting ----


def is_open(election: Election, now: datetime) -> bool:
    return election.status == STATUS_ACTIVE and election.start_date <= now <= election.end_date


def cast_vote(
    s: Session,
    *,
    election_id: int,
    organization_id: int,
    voter: User,
    candidate_ids: list[int],
    now: datetime | None = None,
) -> list[Vote]:
    """
    Accept or reject one ballot.

    Checks run in a fixed order: non-empty selection, election in scope,
    status, time window, prior ballot, candidate membership, single choice,
    max votes. Status and window are independent; both must pass.
    """
    now = now or datetime.utcnow()
    if not candidate_ids:
        raise InvalidCandidate("At least one candidate must be selected.")
    if len(set(candidate_ids)) != len(candidate_ids):
        raise InvalidCandidate("A candidate can only be selected once.")

    election = get_election(s, election_id, organization_id)

    if election.status != STATUS_ACTIVE:
        raise NotOpen("Election is not active.")
    if not (election.start_date <= now <= election.end_date):
        raise NotOpen("Election is not currently open for voting.")

    if has_voted(s, election.id, voter.id):
        raise AlreadyVoted()

    valid_ids = {c.id for c in list_candidates(s, election.id)}
    if any(cid not in valid_ids for cid in candidate_ids):
        raise InvalidCandidate()

    if not election.allow_multiple and len(candidate_ids) > 1:
        raise SingleChoiceOnly()
    if election.allow_multiple and election.max_votes is not None and len(candidate_ids) > election.max_votes:
        raise TooManyChoices(f"You can vote for at most {election.max_votes} candidates.")

    try:
        votes = create_votes(s, election, voter, candidate_ids, now=now)
    except IntegrityError:
        # Lost the race against a concurrent submission from the same voter.
        s.rollback()
        raise AlreadyVoted()

    record_event(
        s,
        actor=voter,
        action="elections.vote.cast",
        entity_type="Election",
        entity_id=str(election.id),
        organization_id=election.organization_id,
        metadata={"selections": len(candidate_ids)},
    )
    logger.info("Vote cast: election_id=%s selections=%s", election.id, len(candidate_ids))
    return votes


# ---- results ----


def election_results(s: Session, election: Election) -> dict[str, Any]:
    """
    Ranked tally. Candidates are first laid out in ballot order and then
    stably sorted by vote count, so ties keep ballot order.
    """
    candidates = list_candidates(s, election.id)
    counts = vote_counts_by_candidate(s, election.id)
    total = sum(counts.get(c.id, 0) for c in candidates)

    voters_by_candidate: dict[int, list[dict[str, Any]]] = {}
    if not election.is_anonymous:
        rows = (
            s.query(Vote.candidate_id, Vote.voter_id, Vote.voter_name)
            .filter(Vote.election_id == election.id)
            .order_by(Vote.id.asc())
            .all()
        )
        for cid, voter_id, voter_name in rows:
            voters_by_candidate.setdefault(int(cid), []).append({"id": voter_id, "name": voter_name})

    results = []
    for c in candidates:
        n = counts.get(c.id, 0)
        row = {
            "candidateId": c.id,
            "name": c.name,
            "position": c.position,
            "photoUrl": c.photo_url,
            "order": c.display_order,
            "voteCount": n,
            "percentage": round(n / total * 100, 2) if total > 0 else 0,
        }
        if not election.is_anonymous:
            row["voters"] = voters_by_candidate.get(c.id, [])
        results.append(row)
    results.sort(key=lambda r: r["voteCount"], reverse=True)

    return {
        "election": {
            "id": election.id,
            "title": election.title,
            "status": election.status,
            "isAnonymous": election.is_anonymous,
            "totalVotes": total,
            "totalCandidates": len(candidates),
        },
        "results": results,
    }


# ---- projections ----


def candidate_to_dict(c: Candidate, *, vote_count: int | None = None) -> dict[str, Any]:
    out = {
        "id": c.id,
        "electionId": c.election_id,
        "name": c.name,
        "description": c.description,
        "photoUrl": c.photo_url,
        "position": c.position,
        "order": c.display_order,
    }
    if vote_count is not None:
        out["voteCount"] = vote_count
    return out


def election_to_dict(
    election: Election,
    *,
    candidates: list[Candidate] | None = None,
    total_votes: int | None = None,
    has_voted: bool | None = None,
) -> dict[str, Any]:
    cands = candidates if candidates is not None else list(election.candidates)
    out: dict[str, Any] = {
        "id": election.id,
        "organizationId": election.organization_id,
        "title": election.title,
        "description": election.description,
        "type": election.type,
        "startDate": iso(election.start_date),
        "endDate": iso(election.end_date),
        "allowMultiple": election.allow_multiple,
        "maxVotes": election.max_votes,
        "isAnonymous": election.is_anonymous,
        "status": election.status,
        "createdById": election.created_by_user_id,
        "createdByName": election.created_by_name,
        "createdAt": iso(election.created_at),
        "updatedAt": iso(election.updated_at),
        "candidates": [candidate_to_dict(c) for c in cands],
    }
    if total_votes is not None:
        out["totalVotes"] = total_votes
    if has_voted is not None:
        out["hasVoted"] = has_voted
    return out
