from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from app.api.dependencies import get_backend, get_chain_registry
from app.main import app
from app.services.integrations.chains.registry import ChainAdapterRegistry

TRADER = "cd" * 20


def _adapter(chain_type):
    adapter = MagicMock()
    adapter.chain_type = chain_type
    return adapter


@pytest.fixture
def client(backend):
    chains = ChainAdapterRegistry([_adapter("monad"), _adapter("sui")])
    app.dependency_overrides[get_backend] = lambda: backend
    app.dependency_overrides[get_chain_registry] = lambda: chains
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_lists_holdings_as_strings(client, backend):
    backend.apply_trade(TRADER, "ab" * 20, "monad", 3)
    backend.apply_trade(TRADER, "ef" * 20, "monad", 10**30)
    backend.apply_trade(TRADER, "ab" * 20, "sui", 9)

    response = client.get(f"/users/0x{TRADER.upper()}/shares/monad")

    assert response.status_code == 200
    data = response.json()
    assert data["user_address"] == TRADER
    assert data["chain_type"] == "monad"
    holdings = {s["subject_address"]: s["shares_amount"] for s in data["shares"]}
    assert holdings == {"ab" * 20: "3", "ef" * 20: str(10**30)}


def test_no_holdings(client):
    response = client.get(f"/users/{TRADER}/shares/sui")

    assert response.status_code == 200
    assert response.json() == {
        "user_address": TRADER,
        "shares": [],
        "chain_type": "sui",
    }


def test_unsupported_chain(client):
    response = client.get(f"/users/{TRADER}/shares/solana")

    assert response.status_code == 400
    assert response.json() == {"success": False, "error": "unsupported chain"}


def test_storage_failure(client):
    failing = MagicMock()
    failing.list_trades.side_effect = RuntimeError("db down")
    app.dependency_overrides[get_backend] = lambda: failing

    response = client.get(f"/users/{TRADER}/shares/monad")

    assert response.status_code == 500
