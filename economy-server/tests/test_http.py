from __future__ import annotations

import httpx
import pytest

from rubis.core.security import create_access_token
from rubis.interfaces.http.deps import get_db_session
from rubis.main import create_app


@pytest.fixture
async def client(factory):
    app = create_app()

    async def override_session():
        async with factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db_session] = override_session
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as http:
        yield http


def auth(user_id: str, role: str = "viewer") -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user_id, role)}"}


@pytest.fixture
async def people(seed):
    owner = await seed.user("streamer")
    viewer = await seed.user("viewer")
    admin = await seed.user("admin", role="admin")
    streamer = await seed.streamer("Alice", owner)
    return {"owner": owner, "viewer": viewer, "admin": admin, "streamer": streamer}


async def mint(client, people, user_id, amount, origin="paid_topup"):
    response = await client.post(
        "/api/admin/rubis/mint",
        json={"user_id": user_id, "amount": amount, "origin": origin},
        headers=auth(people["admin"], "admin"),
    )
    assert response.status_code == 201, response.text
    return response.json()


async def test_invalid_token_is_rejected(client):
    response = await client.get("/api/wallet", headers={"Authorization": "Bearer not-a-token"})

    assert response.status_code == 401


async def test_mint_requires_admin(client, people):
    response = await client.post(
        "/api/admin/rubis/mint",
        json={"user_id": people["viewer"], "amount": 10, "origin": "paid_topup"},
        headers=auth(people["viewer"]),
    )

    assert response.status_code == 403


async def test_wallet_after_mint_and_sink(client, people):
    await mint(client, people, people["viewer"], 100, origin="farm_watch")

    sink = await client.post(
        "/api/wallet/sink", json={"amount": 40, "purpose": "cosmetic"}, headers=auth(people["viewer"])
    )
    wallet = await client.get("/api/wallet", headers=auth(people["viewer"]))
    history = await client.get("/api/wallet/transactions", headers=auth(people["viewer"]))

    assert sink.status_code == 200
    assert wallet.json()["balance"] == 60
    assert wallet.json()["value_cents"] == 21
    assert [tx["kind"] for tx in history.json()["transactions"]] == ["sink", "mint"]


@pytest.mark.parametrize(
    ("amount", "status_code", "error"),
    [(0, 400, "bad_amount"), (500, 409, "insufficient_balance")],
)
async def test_sink_errors_map_to_status(client, people, amount, status_code, error):
    await mint(client, people, people["viewer"], 10)

    response = await client.post(
        "/api/wallet/sink", json={"amount": amount, "purpose": "shop"}, headers=auth(people["viewer"])
    )

    assert response.status_code == status_code
    assert response.json()["error"] == error


async def test_support_by_slug(client, people, seed):
    await mint(client, people, people["viewer"], 100)

    response = await client.post(
        "/api/support",
        json={"streamer_slug": "alice", "amount": 100},
        headers=auth(people["viewer"]),
    )

    assert response.status_code == 200, response.text
    body = response.json()
    assert (body["support_value"], body["platform_amount"], body["streamer_amount"]) == (100, 10, 90)
    assert await seed.balance(people["owner"]) == 90


async def test_support_unknown_streamer(client, people):
    response = await client.post(
        "/api/support",
        json={"streamer_slug": "nobody", "amount": 1},
        headers=auth(people["viewer"]),
    )

    assert response.status_code == 404
    assert response.json()["error"] == "streamer_not_found"


async def test_cashout_is_for_the_streamer(client, people):
    await mint(client, people, people["owner"], 100)
    body = {"streamer_slug": "alice", "value_cents": 50}

    forbidden = await client.post("/api/cashout", json=body, headers=auth(people["viewer"]))
    created = await client.post("/api/cashout", json=body, headers=auth(people["owner"]))
    too_much = await client.post(
        "/api/cashout", json={**body, "value_cents": 1000}, headers=auth(people["owner"])
    )

    assert forbidden.status_code == 403
    assert created.status_code == 201
    assert created.json()["rubis_debited"] == 50
    assert too_much.status_code == 400
    assert too_much.json()["error"] == "insufficient_value"


async def test_chest_management_is_for_owner_or_admin(client, people):
    viewer = await client.post("/api/streamers/alice/chest/open", json={}, headers=auth(people["viewer"]))
    admin = await client.post("/api/streamers/alice/chest/open", json={}, headers=auth(people["admin"], "admin"))
    again = await client.post("/api/streamers/alice/chest/open", json={}, headers=auth(people["owner"]))

    assert viewer.status_code == 403
    assert admin.status_code == 201
    assert again.status_code == 409
    assert again.json()["error"] == "already_open"


async def test_chest_join_errors(client, people):
    missing = await client.post("/api/streamers/alice/chest/join", headers=auth(people["viewer"]))
    await client.post("/api/streamers/alice/chest/open", json={}, headers=auth(people["owner"]))
    owner = await client.post("/api/streamers/alice/chest/join", headers=auth(people["owner"]))
    offline = await client.post("/api/streamers/alice/chest/join", headers=auth(people["viewer"]))

    assert (missing.status_code, missing.json()["error"]) == (404, "no_opening")
    assert (owner.status_code, owner.json()["error"]) == (403, "owner_forbidden")
    assert (offline.status_code, offline.json()["error"]) == (409, "stream_offline")


async def test_chest_deposit_and_state(client, people):
    await mint(client, people, people["owner"], 80)

    deposit = await client.post(
        "/api/streamers/alice/chest/deposit", json={"amount": 30}, headers=auth(people["owner"])
    )
    state = await client.get("/api/streamers/alice/chest", headers=auth(people["viewer"]))
    close = await client.post("/api/streamers/alice/chest/close", headers=auth(people["owner"]))

    assert deposit.status_code == 200
    assert deposit.json()["chest_balance"] == 30
    assert state.json()["breakdown"] == {"2000": 30}
    assert state.json()["opening"] is None
    assert (close.status_code, close.json()["error"]) == (404, "no_opening")
