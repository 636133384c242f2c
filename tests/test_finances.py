import pytest


@pytest.fixture()
def event_id(client, world):
    r = client.post(
        "/api/events",
        json={"title": "Food Fest", "startDate": "2026-02-01T10:00:00", "endDate": "2026-02-01T20:00:00"},
        headers=world.headers("a_admin"),
    )
    return r.json["id"]


def _income(client, world, event_id, amount="100.50", **overrides):
    body = {"eventId": event_id, "amount": amount, "date": "2026-02-01", "time": "10:30", "receiptNumber": "R-1"}
    body.update(overrides)
    return client.post("/api/income", json=body, headers=world.headers("a_admin"))


def _expense(client, world, event_id, amount="40", **overrides):
    body = {"eventId": event_id, "amount": amount, "date": "2026-02-01", "time": "09:00", "billNumber": "B-1"}
    body.update(overrides)
    return client.post("/api/expense", json=body, headers=world.headers("a_admin"))


def test_income_create_and_detail(client, world, event_id):
    r = _income(client, world, event_id)
    assert r.status_code == 201
    rec = r.json
    assert rec["amount"] == 100.5
    assert rec["approveStatus"] == "Pending"
    assert rec["paidStatus"] == "Pending"
    assert rec["approvePersonId"] is None
    assert rec["event"]["title"] == "Food Fest"
    assert rec["time"] == "10:30:00"

    r = client.get(f"/api/income/{rec['id']}", headers=world.headers("a_member"))
    assert r.status_code == 200
    assert r.json["receiptNumber"] == "R-1"
    assert client.get(f"/api/income/{rec['id']}", headers=world.headers("b_admin")).status_code == 404


@pytest.mark.parametrize(
    "overrides",
    [
        {"amount": "0"},
        {"amount": "-5"},
        {"amount": "abc"},
        {"date": "01/02/2026"},
        {"time": "late"},
        {"approveStatus": "Maybe"},
        {"paidStatus": "Sort of"},
    ],
)
def test_income_validation(client, world, event_id, overrides):
    assert _income(client, world, event_id, **overrides).status_code == 400


def test_event_must_be_in_scope(client, world, event_id):
    r = client.post(
        "/api/events",
        json={"title": "B event", "startDate": "2026-02-01T10:00:00", "endDate": "2026-02-01T20:00:00"},
        headers=world.headers("b_admin"),
    )
    assert _income(client, world, r.json["id"]).status_code == 400
    assert _income(client, world, 999999).status_code == 400
    body = {"amount": "5", "date": "2026-02-01", "time": "10:00"}
    assert client.post("/api/income", json=body, headers=world.headers("a_admin")).status_code == 400


def test_write_needs_permission(client, world, event_id):
    body = {"eventId": event_id, "amount": "5", "date": "2026-02-01", "time": "10:00"}
    assert client.post("/api/income", json=body, headers=world.headers("a_member")).status_code == 403
    assert client.post("/api/expense", json=body, headers=world.headers("a_member")).status_code == 403


def test_approval_records_approver(client, world, event_id):
    rec = _income(client, world, event_id).json
    r = client.patch(f"/api/income/{rec['id']}/approve", json={"approveStatus": "Approved"}, headers=world.headers("a_admin"))
    assert r.status_code == 200
    assert r.json["approveStatus"] == "Approved"
    assert r.json["approvePersonId"] == world.ids["a_admin"]

    r = client.patch(f"/api/income/{rec['id']}/approve", json={}, headers=world.headers("a_admin"))
    assert r.status_code == 400
    r = client.patch(f"/api/income/{rec['id']}/approve", json={"approveStatus": "Nope"}, headers=world.headers("a_admin"))
    assert r.status_code == 400


def test_income_paid_status(client, world, event_id):
    rec = _income(client, world, event_id).json
    r = client.patch(f"/api/income/{rec['id']}/paid", json={"paidStatus": "Paid"}, headers=world.headers("a_admin"))
    assert r.status_code == 200
    assert r.json["paidStatus"] == "Paid"
    assert client.patch(f"/api/income/{rec['id']}/paid", json={}, headers=world.headers("a_admin")).status_code == 400


def test_update_and_delete(client, world, event_id):
    rec = _expense(client, world, event_id).json
    r = client.put(
        f"/api/expense/{rec['id']}",
        json={"amount": "55.25", "description": "Tents", "billNumber": "B-2"},
        headers=world.headers("a_admin"),
    )
    assert r.status_code == 200
    assert (r.json["amount"], r.json["description"], r.json["billNumber"]) == (55.25, "Tents", "B-2")

    assert client.delete(f"/api/expense/{rec['id']}", headers=world.headers("a_member")).status_code == 403
    assert client.delete(f"/api/expense/{rec['id']}", headers=world.headers("a_admin")).status_code == 204
    assert client.get(f"/api/expense/{rec['id']}", headers=world.headers("a_admin")).status_code == 404


def test_list_filters(client, world, event_id):
    a = _income(client, world, event_id, receiptNumber="R-100").json
    _income(client, world, event_id, receiptNumber="R-200", paidStatus="Paid")
    client.patch(f"/api/income/{a['id']}/approve", json={"approveStatus": "Declined"}, headers=world.headers("a_admin"))

    member = world.headers("a_member")
    assert len(client.get("/api/income", headers=member).json["items"]) == 2
    items = client.get("/api/income?approveStatus=Declined", headers=member).json["items"]
    assert [i["id"] for i in items] == [a["id"]]
    items = client.get("/api/income?paidStatus=Paid", headers=member).json["items"]
    assert [i["receiptNumber"] for i in items] == ["R-200"]
    items = client.get("/api/income?q=R-100", headers=member).json["items"]
    assert [i["id"] for i in items] == [a["id"]]
    items = client.get("/api/income?q=food", headers=member).json["items"]
    assert len(items) == 2
    assert client.get("/api/income?approveStatus=Bogus", headers=member).status_code == 400
    assert client.get(f"/api/income?eventId={event_id}", headers=member).status_code == 200
    assert client.get("/api/income", headers=world.headers("b_admin")).json["items"] == []


def test_stats(client, world, event_id):
    admin = world.headers("a_admin")
    first = _income(client, world, event_id, amount="100").json
    _income(client, world, event_id, amount="50", paidStatus="Paid")
    declined = _income(client, world, event_id, amount="25").json
    client.patch(f"/api/income/{first['id']}/approve", json={"approveStatus": "Approved"}, headers=admin)
    client.patch(f"/api/income/{declined['id']}/approve", json={"approveStatus": "Declined"}, headers=admin)

    stats = client.get("/api/income/stats", headers=admin).json
    assert stats["approved"] == {"total": 100.0, "count": 1}
    assert stats["pending"] == {"total": 50.0, "count": 1}
    assert stats["declined"] == {"total": 25.0, "count": 1}
    assert (stats["paidCount"], stats["unpaidCount"]) == (1, 2)

    stats = client.get("/api/expense/stats", headers=admin).json
    assert stats["approved"] == {"total": 0.0, "count": 0}
    assert "paidCount" not in stats


def test_event_financials_count_only_approved(client, world, event_id):
    admin = world.headers("a_admin")
    inc = _income(client, world, event_id, amount="300").json
    _income(client, world, event_id, amount="1000")
    exp = _expense(client, world, event_id, amount="120.40").json
    client.patch(f"/api/income/{inc['id']}/approve", json={"approveStatus": "Approved"}, headers=admin)
    client.patch(f"/api/expense/{exp['id']}/approve", json={"approveStatus": "Approved"}, headers=admin)

    r = client.get(f"/api/event-financials/{event_id}", headers=world.headers("a_member"))
    assert r.status_code == 200
    assert (r.json["income"], r.json["expenses"], r.json["net"]) == (300.0, 120.4, 179.6)

    items = client.get("/api/event-financials", headers=admin).json["items"]
    assert [i["id"] for i in items] == [event_id]
    assert client.get("/api/event-financials/999999", headers=admin).status_code == 404
    assert client.get(f"/api/event-financials/{event_id}", headers=world.headers("b_admin")).status_code == 404
