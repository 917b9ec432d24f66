from unittest.mock import MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from app.api.dependencies import get_agent_registry
from app.backend.abstract import BackendError
from app.main import app
from app.services.agents.registry import AgentRegistry

SUBJECT = "0x" + "ab" * 20


@pytest.fixture
def registry(backend):
    registry = AgentRegistry(backend)
    app.dependency_overrides[get_agent_registry] = lambda: registry
    yield registry
    app.dependency_overrides.clear()


@pytest.fixture
def client(registry):
    with patch("app.api.dependencies.config") as mock_config:
        mock_config.api.admin_token = ""
        yield TestClient(app)


def _bot(**overrides):
    body = {
        "bot_token": "123:token",
        "chat_group_id": -1001234567890,
        "subject_address": SUBJECT,
        "agent_name": "alpha",
        "invite_url": "https://t.me/+alpha",
        "bio": "First agent",
    }
    body.update(overrides)
    return body


class TestAddTelegramBot:
    def test_registers_agent(self, client, backend):
        response = client.post("/add_tg_bot", json=_bot())

        assert response.status_code == 200
        assert response.json() == {"success": True}
        stored = backend.get_telegram_bot("alpha")
        assert stored.chat_group_id == "-1001234567890"
        assert stored.subject_address == "ab" * 20
        assert stored.chain_type == "monad"

    def test_duplicate_name(self, client):
        client.post("/add_tg_bot", json=_bot())

        response = client.post(
            "/add_tg_bot", json=_bot(subject_address="0x" + "cd" * 20)
        )

        assert response.status_code == 409
        assert response.json()["success"] is False

    def test_duplicate_subject(self, client):
        client.post("/add_tg_bot", json=_bot())

        response = client.post("/add_tg_bot", json=_bot(agent_name="beta"))

        assert response.status_code == 409
        assert "Subject" in response.json()["error"]

    def test_duplicate_chat(self, client, backend):
        client.post("/add_tg_bot", json=_bot())

        response = client.post(
            "/add_tg_bot",
            json=_bot(agent_name="beta", subject_address="0x" + "cd" * 20),
        )

        assert response.status_code == 409
        assert response.json() == {
            "success": False,
            "error": "Chat group already managed by an agent",
        }
        assert backend.get_telegram_bot("beta") is None

    def test_invalid_subject(self, client):
        response = client.post("/add_tg_bot", json=_bot(subject_address="nope"))
        assert response.status_code == 400

    def test_missing_field(self, client):
        body = _bot()
        del body["bot_token"]
        assert client.post("/add_tg_bot", json=body).status_code == 422

    def test_storage_failure(self, client):
        failing = MagicMock()
        failing.register.side_effect = BackendError("connection refused")
        app.dependency_overrides[get_agent_registry] = lambda: failing

        response = client.post("/add_tg_bot", json=_bot())

        assert response.status_code == 500
        assert response.json() == {"success": False, "error": "Failed to register agent"}


class TestListAgents:
    def test_paginates(self, client):
        for n in range(12):
            client.post(
                "/add_tg_bot",
                json=_bot(
                    agent_name=f"agent{n:02d}",
                    subject_address="0x" + f"{n + 1:040x}",
                    chat_group_id=-100 - n,
                ),
            )

        first = client.get("/agents").json()
        second = client.get("/agents", params={"page": 2, "page_size": 10}).json()

        assert first["total"] == 12
        assert first["page"] == 1
        assert first["page_size"] == 10
        assert len(first["agents"]) == 10
        assert len(second["agents"]) == 2
        assert first["agents"][0]["agent_name"] == "agent11"
        assert set(first["agents"][0]) == {"agent_name", "subject_address", "created_at"}

    def test_empty(self, client):
        assert client.get("/agents").json() == {
            "agents": [],
            "total": 0,
            "page": 1,
            "page_size": 10,
        }

    def test_storage_failure(self, client):
        failing = MagicMock()
        failing.list.side_effect = BackendError("connection refused")
        app.dependency_overrides[get_agent_registry] = lambda: failing

        response = client.get("/agents")

        assert response.status_code == 500
        assert response.json() == {"success": False, "error": "Failed to list agents"}

    @pytest.mark.parametrize("params", [{"page": 0}, {"page_size": 0}, {"page_size": 500}])
    def test_invalid_pagination(self, client, params):
        response = client.get("/agents", params=params)
        assert response.status_code == 400
        assert response.json()["success"] is False


class TestGetAgent:
    def test_found_without_token(self, client):
        client.post("/add_tg_bot", json=_bot())

        data = client.get("/agents/alpha").json()

        assert data["success"] is True
        assert data["agent"]["agent_name"] == "alpha"
        assert data["agent"]["bio"] == "First agent"
        assert "bot_token" not in data["agent"]

    def test_missing_is_null(self, client):
        response = client.get("/agents/ghost")
        assert response.status_code == 200
        assert response.json() == {"agent": None, "success": True}

    def test_storage_failure(self, client):
        failing = MagicMock()
        failing.get_by_name.side_effect = BackendError("connection refused")
        app.dependency_overrides[get_agent_registry] = lambda: failing

        response = client.get("/agents/alpha")

        assert response.status_code == 500
        assert response.json() == {"success": False, "error": "Failed to load agent"}


class TestAgentDetail:
    def test_detail(self, client):
        client.post("/add_tg_bot", json=_bot())

        response = client.get("/agent/detail/alpha")

        assert response.status_code == 200
        assert response.json() == {
            "agent_name": "alpha",
            "subject_address": "ab" * 20,
            "invite_url": "https://t.me/+alpha",
            "bio": "First agent",
            "success": True,
        }

    def test_detail_missing(self, client):
        response = client.get("/agent/detail/ghost")

        assert response.status_code == 404
        assert response.json() == {
            "agent_name": "",
            "subject_address": "",
            "invite_url": "",
            "bio": None,
            "success": False,
            "error": "Agent not found",
        }

    def test_detail_without_bio_is_null(self, client):
        body = _bot()
        del body["bio"]
        client.post("/add_tg_bot", json=body)

        data = client.get("/agent/detail/alpha").json()

        assert data["bio"] is None
        assert data["success"] is True
        assert "error" not in data

    def test_detail_storage_failure(self, client):
        failing = MagicMock()
        failing.get_by_name.side_effect = BackendError("connection refused")
        app.dependency_overrides[get_agent_registry] = lambda: failing

        response = client.get("/agent/detail/alpha")

        assert response.status_code == 500
        assert response.json()["success"] is False
        assert response.json()["error"] == "Failed to load agent"


class TestUpdateAgent:
    def test_update_bio(self, client, backend):
        client.post("/add_tg_bot", json=_bot())

        response = client.patch("/agents/alpha", json={"bio": "Updated"})

        assert response.status_code == 200
        assert backend.get_telegram_bot("alpha").bio == "Updated"

    def test_update_missing(self, client):
        response = client.patch("/agents/ghost", json={"bio": "Updated"})
        assert response.status_code == 404

    def test_update_storage_failure(self, client):
        failing = MagicMock()
        failing.update_profile.side_effect = BackendError("connection refused")
        app.dependency_overrides[get_agent_registry] = lambda: failing

        response = client.patch("/agents/alpha", json={"bio": "Updated"})

        assert response.status_code == 500
        assert response.json() == {"success": False, "error": "Failed to update agent"}
