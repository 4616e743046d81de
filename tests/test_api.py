import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from cropbid.api.deps import get_bidding_service
from cropbid.core.jwt import create_access_token
from cropbid.main import app

FARMER = create_access_token("farmer-1", "Sunita Patil", "sunita@farm.in", role="farmer")
OTHER_FARMER = create_access_token("farmer-2", "Anil More", "anil@farm.in", role="farmer")
TRADER = create_access_token("trader-1", "Ravi Traders", "ravi@traders.in")
ADMIN = create_access_token("admin-1", "Admin", "admin@agri.in", role="admin")


def _auth(token):
    return {"Authorization": f"Bearer {token}"}


@pytest_asyncio.fixture
async def client(service):
    app.dependency_overrides[get_bidding_service] = lambda: service
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()


async def _start(client, token=FARMER, subject_ref="lot-1"):
    response = await client.post(
        "/api/sessions",
        json={"subject_ref": subject_ref, "minimum_bid": 100, "harvest_period": "2026-11"},
        headers=_auth(token),
    )
    assert response.status_code == 201, response.text
    return response.json()["session_id"]


@pytest.mark.asyncio
async def test_health(client):
    response = await client.get("/")
    assert response.status_code == 200
    assert response.json()["status"] == "running"


@pytest.mark.asyncio
async def test_create_session_requires_token(client):
    response = await client.post(
        "/api/sessions",
        json={"subject_ref": "lot-1", "minimum_bid": 100, "harvest_period": "2026-11"},
    )
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_invalid_token_is_rejected(client):
    response = await client.post(
        "/api/sessions/00000000-0000-0000-0000-000000000000/bids",
        json={"amount_per_unit": 120},
        headers=_auth("not-a-jwt"),
    )
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_create_session_with_malformed_period(client):
    response = await client.post(
        "/api/sessions",
        json={"subject_ref": "lot-1", "minimum_bid": 100, "harvest_period": "Nov"},
        headers=_auth(FARMER),
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_create_session_with_non_positive_minimum(client):
    response = await client.post(
        "/api/sessions",
        json={"subject_ref": "lot-1", "minimum_bid": 0, "harvest_period": "2026-11"},
        headers=_auth(FARMER),
    )
    assert response.status_code == 400
    assert response.json()["code"] == "invalid_input"


@pytest.mark.asyncio
async def test_duplicate_session_conflicts(client):
    await _start(client)
    response = await client.post(
        "/api/sessions",
        json={"subject_ref": "lot-1", "minimum_bid": 150, "harvest_period": "2026-12"},
        headers=_auth(FARMER),
    )
    assert response.status_code == 409
    assert response.json()["code"] == "session_already_active"


@pytest.mark.asyncio
async def test_bid_flow(client):
    session_id = await _start(client)

    response = await client.post(
        f"/api/sessions/{session_id}/bids",
        json={"amount_per_unit": 80},
        headers=_auth(TRADER),
    )
    assert response.status_code == 422
    assert response.json()["code"] == "below_minimum"

    response = await client.post(
        f"/api/sessions/{session_id}/bids",
        json={"amount_per_unit": 120},
        headers=_auth(TRADER),
    )
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "accepted"
    assert body["bid"]["bidder_email"] == "ravi@traders.in"
    assert body["bid"]["bidder_name"] == "Ravi Traders"
    bid_id = body["bid"]["bid_id"]

    response = await client.post(
        f"/api/sessions/{session_id}/bids",
        json={"amount_per_unit": 110},
        headers=_auth(OTHER_FARMER),
    )
    assert response.status_code == 422
    assert response.json()["code"] == "below_current_highest"

    response = await client.put(
        f"/api/sessions/{session_id}/bids",
        json={"previous_amount": 120, "new_amount": 150},
        headers=_auth(TRADER),
    )
    assert response.status_code == 200
    assert response.json()["status"] == "revised"
    assert response.json()["highest_bid"] == 150

    response = await client.put(
        f"/api/sessions/{session_id}/bids/{bid_id}",
        json={"new_amount": 175},
        headers=_auth(TRADER),
    )
    assert response.status_code == 200
    assert response.json()["bid"]["amount_per_unit"] == 175

    response = await client.put(
        f"/api/sessions/{session_id}/bids",
        json={"previous_amount": 120, "new_amount": 190},
        headers=_auth(TRADER),
    )
    assert response.status_code == 404
    assert response.json()["code"] == "bid_not_found"

    response = await client.get(
        f"/api/sessions/{session_id}/bids/mine", headers=_auth(TRADER)
    )
    assert [b["amount_per_unit"] for b in response.json()["bids"]] == [175]


@pytest.mark.asyncio
async def test_get_session_includes_subject(client):
    session_id = await _start(client)

    response = await client.get(f"/api/sessions/{session_id}")
    assert response.status_code == 200
    body = response.json()
    assert body["session"]["minimum_bid"] == 100
    assert body["subject"]["crop_type"] == "Tomato"
    assert body["is_open"] is True


@pytest.mark.asyncio
async def test_unknown_session_is_404(client):
    response = await client.get("/api/sessions/00000000-0000-0000-0000-000000000000")
    assert response.status_code == 404
    assert response.json()["code"] == "not_found"


@pytest.mark.asyncio
async def test_active_sessions_and_subject_lookup(client):
    session_id = await _start(client)

    response = await client.get("/api/sessions/active")
    assert response.status_code == 200
    entries = response.json()
    assert [e["session"]["id"] for e in entries] == [session_id]
    assert entries[0]["bid_count"] == 0

    response = await client.get("/api/subjects/lot-1/session")
    assert response.status_code == 200
    assert response.json()["id"] == session_id

    response = await client.get("/api/subjects/lot-9/session")
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_only_owner_or_admin_can_stop(client):
    session_id = await _start(client)

    response = await client.post(f"/api/sessions/{session_id}/stop", headers=_auth(TRADER))
    assert response.status_code == 403
    assert response.json()["code"] == "unauthorized"

    response = await client.post(
        f"/api/sessions/{session_id}/stop", headers=_auth(OTHER_FARMER)
    )
    assert response.status_code == 403

    response = await client.post(f"/api/sessions/{session_id}/stop", headers=_auth(FARMER))
    assert response.status_code == 200
    assert response.json()["status"] == "stopped"

    response = await client.post(
        f"/api/sessions/{session_id}/bids",
        json={"amount_per_unit": 200},
        headers=_auth(TRADER),
    )
    assert response.status_code == 409
    assert response.json()["code"] == "session_closed"


@pytest.mark.asyncio
async def test_admin_can_stop_any_session(client):
    session_id = await _start(client)
    response = await client.post(f"/api/sessions/{session_id}/stop", headers=_auth(ADMIN))
    assert response.status_code == 200


@pytest.mark.asyncio
async def test_infinite_bid_is_refused_and_bidding_continues(client):
    session_id = await _start(client)

    for raw in ('{"amount_per_unit": Infinity}', '{"amount_per_unit": NaN}'):
        response = await client.post(
            f"/api/sessions/{session_id}/bids",
            content=raw,
            headers={**_auth(TRADER), "Content-Type": "application/json"},
        )
        assert response.status_code == 422
        assert response.json()["detail"][0]["loc"][-1] == "amount_per_unit"

    response = await client.post(
        f"/api/sessions/{session_id}/bids",
        json={"amount_per_unit": 10_000_000},
        headers=_auth(TRADER),
    )
    assert response.status_code == 200
    assert response.json()["bid"]["amount_per_unit"] == 10_000_000


@pytest.mark.asyncio
async def test_revise_to_infinity_is_refused(client):
    session_id = await _start(client)
    await client.post(
        f"/api/sessions/{session_id}/bids",
        json={"amount_per_unit": 120},
        headers=_auth(TRADER),
    )

    response = await client.put(
        f"/api/sessions/{session_id}/bids",
        content='{"previous_amount": 120, "new_amount": Infinity}',
        headers={**_auth(TRADER), "Content-Type": "application/json"},
    )
    assert response.status_code == 422

    response = await client.get(f"/api/sessions/{session_id}")
    assert response.json()["session"]["bids"][0]["amount_per_unit"] == 120


@pytest.mark.asyncio
async def test_create_session_with_nan_minimum(client):
    response = await client.post(
        "/api/sessions",
        content='{"subject_ref": "lot-1", "minimum_bid": NaN, "harvest_period": "2026-11"}',
        headers={**_auth(FARMER), "Content-Type": "application/json"},
    )
    assert response.status_code == 422

    response = await client.get("/api/subjects/lot-1/session")
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_create_session_does_not_resolve_subject(client, directory):
    await _start(client)
    assert directory.calls == []
