"""End-to-end tests of the HTTP API against an isolated database."""

from unittest.mock import MagicMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from backend.api.dependencies import get_card_generator, get_store
from backend.card_generator import CardDraft, CardGenerator
from backend.database import get_session
from backend.errors import GenerationError, StoreUnavailableError
from backend.main import app
from backend.srs.store import LearningRecordStore


@pytest_asyncio.fixture
async def client(session_factory):
    async def _session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = _session
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()


async def _create_user(client: AsyncClient, username: str = "alice") -> int:
    response = await client.post("/api/users", json={"username": username})
    assert response.status_code == 201
    return response.json()["id"]


async def _create_card(client: AsyncClient, user_id: int, **fields) -> dict:
    payload = {
        "user_id": user_id,
        "title": "Newton's second law",
        "subject": "physics",
        "core_point": "F = m a",
        "confusion_point": "Mass is not weight",
        "tags": ["mechanics", " forces "],
    }
    payload.update(fields)
    response = await client.post("/api/cards", json=payload)
    assert response.status_code == 201
    return response.json()


# --- Users ---


@pytest.mark.asyncio
async def test_create_and_get_user(client) -> None:
    user_id = await _create_user(client)
    response = await client.get(f"/api/users/{user_id}")
    assert response.status_code == 200
    assert response.json()["username"] == "alice"


@pytest.mark.asyncio
async def test_duplicate_username_conflicts(client) -> None:
    await _create_user(client)
    response = await client.post("/api/users", json={"username": "alice"})
    assert response.status_code == 409


@pytest.mark.asyncio
async def test_unknown_user_404(client) -> None:
    response = await client.get("/api/users/999")
    assert response.status_code == 404


# --- Cards ---


@pytest.mark.asyncio
async def test_created_card_is_enrolled(client) -> None:
    user_id = await _create_user(client)
    card = await _create_card(client, user_id)

    assert card["tags"] == ["mechanics", "forces"]
    progress = card["progress"]
    assert progress["status"] == "new"
    assert progress["review_count"] == 0
    assert progress["mastery_level"] == 0


@pytest.mark.asyncio
async def test_card_for_unknown_user_404(client) -> None:
    response = await client.post(
        "/api/cards", json={"user_id": 42, "title": "x", "core_point": "y"}
    )
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_list_cards_paginates_and_filters(client) -> None:
    user_id = await _create_user(client)
    for i in range(3):
        await _create_card(client, user_id, title=f"Physics {i}")
    await _create_card(client, user_id, title="Cells", subject="biology")

    page = (await client.get("/api/cards", params={"user_id": user_id, "limit": 2})).json()
    assert page["total"] == 4
    assert page["total_pages"] == 2
    assert len(page["cards"]) == 2

    biology = (await client.get("/api/cards", params={"user_id": user_id, "subject": "biology"})).json()
    assert [c["title"] for c in biology["cards"]] == ["Cells"]

    new = (await client.get("/api/cards", params={"user_id": user_id, "status": "new"})).json()
    assert new["total"] == 4
    mastered = (await client.get("/api/cards", params={"user_id": user_id, "status": "mastered"})).json()
    assert mastered["total"] == 0


@pytest.mark.asyncio
async def test_list_cards_rejects_unknown_status(client) -> None:
    user_id = await _create_user(client)
    response = await client.get("/api/cards", params={"user_id": user_id, "status": "forgotten"})
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_delete_card_removes_history(client) -> None:
    user_id = await _create_user(client)
    card = await _create_card(client, user_id)
    await client.post(
        "/api/review",
        json={"user_id": user_id, "card_id": card["id"], "difficulty": "normal", "is_correct": True},
    )

    response = await client.delete(f"/api/cards/{card['id']}", params={"user_id": user_id})
    assert response.status_code == 200
    assert (await client.get(f"/api/cards/{card['id']}", params={"user_id": user_id})).status_code == 404

    stats = (await client.get(f"/api/stats/{user_id}")).json()
    assert stats["learning"]["total_cards"] == 0
    assert stats["recent_activity"] == []


@pytest.mark.asyncio
async def test_delete_someone_elses_card_404(client) -> None:
    owner = await _create_user(client, "alice")
    other = await _create_user(client, "bob")
    card = await _create_card(client, owner)

    response = await client.delete(f"/api/cards/{card['id']}", params={"user_id": other})
    assert response.status_code == 404
    assert (await client.get(f"/api/cards/{card['id']}", params={"user_id": owner})).status_code == 200


@pytest.mark.asyncio
async def test_generate_card(client) -> None:
    user_id = await _create_user(client)
    generator = MagicMock(spec=CardGenerator)
    generator.generate.return_value = CardDraft(
        title="Photosynthesis",
        subject="biology",
        core_point="Light energy becomes chemical energy",
        difficulty=2,
        tags=["plants"],
        sketch_prompt="A leaf with arrows from the sun",
    )
    app.dependency_overrides[get_card_generator] = lambda: generator

    response = await client.post(
        "/api/cards/generate", json={"user_id": user_id, "text": "Plants make sugar from light."}
    )
    assert response.status_code == 201
    body = response.json()
    assert body["title"] == "Photosynthesis"
    assert body["sketch_prompt"] == "A leaf with arrows from the sun"
    assert body["progress"]["status"] == "new"
    generator.generate.assert_called_once_with("Plants make sugar from light.", None)


@pytest.mark.asyncio
async def test_generate_card_bad_model_output_502(client) -> None:
    user_id = await _create_user(client)
    generator = MagicMock(spec=CardGenerator)
    generator.generate.side_effect = GenerationError("no JSON object in reply")
    app.dependency_overrides[get_card_generator] = lambda: generator

    response = await client.post("/api/cards/generate", json={"user_id": user_id, "text": "notes"})
    assert response.status_code == 502


# --- Review ---


@pytest.mark.asyncio
async def test_review_flow(client) -> None:
    user_id = await _create_user(client)
    card = await _create_card(client, user_id)

    response = await client.post(
        "/api/review",
        json={
            "user_id": user_id,
            "card_id": card["id"],
            "difficulty": "normal",
            "is_correct": True,
            "time_spent": 8,
            "event_id": "evt-1",
        },
    )
    assert response.status_code == 200
    body = response.json()
    assert body["progress"]["review_count"] == 1
    assert body["progress"]["mastery_level"] == 100
    assert body["progress"]["status"] == "mastered"
    assert body["next_interval_hours"] == 720
    assert body["duplicate"] is False

    replay = await client.post(
        "/api/review",
        json={"user_id": user_id, "card_id": card["id"], "difficulty": "normal", "event_id": "evt-1"},
    )
    assert replay.json()["duplicate"] is True
    assert replay.json()["progress"]["review_count"] == 1


@pytest.mark.asyncio
async def test_review_unknown_card_404(client) -> None:
    user_id = await _create_user(client)
    response = await client.post(
        "/api/review", json={"user_id": user_id, "card_id": 12345, "difficulty": "easy"}
    )
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_review_unknown_user_404(client) -> None:
    owner = await _create_user(client)
    card = await _create_card(client, owner)
    response = await client.post(
        "/api/review", json={"user_id": 999, "card_id": card["id"], "difficulty": "normal"}
    )
    assert response.status_code == 404
    assert "User 999" in response.json()["detail"]


@pytest.mark.asyncio
async def test_review_invalid_difficulty_422(client) -> None:
    user_id = await _create_user(client)
    card = await _create_card(client, user_id)
    response = await client.post(
        "/api/review", json={"user_id": user_id, "card_id": card["id"], "difficulty": "medium"}
    )
    assert response.status_code == 422

    progress = (await client.get(f"/api/cards/{card['id']}", params={"user_id": user_id})).json()["progress"]
    assert progress["review_count"] == 0


@pytest.mark.asyncio
async def test_preview_lists_every_difficulty(client) -> None:
    user_id = await _create_user(client)
    card = await _create_card(client, user_id)

    response = await client.get(f"/api/review/preview/{card['id']}", params={"user_id": user_id})
    assert response.status_code == 200
    options = {o["difficulty"]: o for o in response.json()["options"]}
    assert set(options) == {"again", "hard", "normal", "easy"}
    assert options["again"]["next_interval_hours"] == 1
    assert options["easy"]["next_interval_hours"] == 2


@pytest.mark.asyncio
async def test_due_cards_with_stats(client) -> None:
    user_id = await _create_user(client)
    await _create_card(client, user_id)

    response = await client.get("/api/review/due", params={"user_id": user_id})
    assert response.status_code == 200
    body = response.json()
    # freshly enrolled cards become due an hour after creation
    assert body["due_cards"] == []
    assert body["stats"]["total_cards"] == 1
    assert body["stats"]["new_cards"] == 1


@pytest.mark.asyncio
async def test_due_cards_invalid_limit_422(client) -> None:
    user_id = await _create_user(client)
    response = await client.get("/api/review/due", params={"user_id": user_id, "limit": 0})
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_store_outage_returns_503(client, session_factory) -> None:
    class UnavailableStore(LearningRecordStore):
        async def query_due_records(self, *args, **kwargs):
            raise StoreUnavailableError("database is locked")

    async def _store():
        async with session_factory() as session:
            yield UnavailableStore(session)

    app.dependency_overrides[get_store] = _store
    response = await client.get("/api/review/due", params={"user_id": 1})
    assert response.status_code == 503
    assert response.headers["retry-after"] == "1"


# --- Stats ---


@pytest.mark.asyncio
async def test_dashboard_stats(client) -> None:
    user_id = await _create_user(client)
    card = await _create_card(client, user_id)
    await client.post(
        "/api/review",
        json={"user_id": user_id, "card_id": card["id"], "difficulty": "hard", "is_correct": False},
    )

    response = await client.get(f"/api/stats/{user_id}", params={"days": 3})
    assert response.status_code == 200
    body = response.json()
    assert body["learning"]["total_cards"] == 1
    assert body["learning"]["today_reviewed"] == 1
    assert len(body["daily_stats"]) == 3
    assert body["daily_stats"][-1]["review_count"] == 1
    assert body["daily_stats"][-1]["correct_count"] == 0
    assert body["recent_activity"][0]["card_title"] == "Newton's second law"
    assert body["recent_activity"][0]["difficulty"] == "hard"


@pytest.mark.asyncio
async def test_reminder_endpoint(client) -> None:
    user_id = await _create_user(client)
    response = await client.get(f"/api/stats/{user_id}/reminder")
    assert response.status_code == 200
    body = response.json()
    # nothing is due yet, whatever the time of day
    assert body["should_remind"] is False
    assert body["due_count"] == 0
