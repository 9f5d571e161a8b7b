"""Shared fixtures for slatedesk tests."""
import asyncio
import copy
import uuid

import pytest
from fastapi.testclient import TestClient

from slatedesk.services import analysis


@pytest.fixture(autouse=True)
def _isolate(monkeypatch):
    """No real API keys, and a fresh per-game lock registry for every test."""
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    monkeypatch.delenv("PERPLEXITY_API_KEY", raising=False)
    analysis._GAME_LOCKS.clear()
    yield
    analysis._GAME_LOCKS.clear()


@pytest.fixture
def client(monkeypatch, tmp_path):
    """API client on a throwaway SQLite file; the lifespan creates the schema."""
    monkeypatch.setenv("DATABASE_URL", f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    from slatedesk.main import app

    with TestClient(app) as c:
        yield c


class FakeStore:
    """
    In-memory stand-in for slatedesk.core.persist, covering what the analysis
    service touches. `replace_delay` sleeps between the delete and the insert
    of replace_why_factors so interleaving writers would be visible.
    """

    def __init__(self, framework=None, replace_delay=0.0):
        self.games = {}
        self.slates = {}
        self.evidence = {}
        self.why_factors = {}
        self.framework = framework
        self.replace_delay = replace_delay
        self.replace_calls = 0

    def add_game(self, home, away, slate_id="slate-1", **extra):
        game_id = extra.pop("id", None) or str(uuid.uuid4())
        self.games[game_id] = {
            "id": game_id,
            "slateId": slate_id,
            "homeTeam": home,
            "awayTeam": away,
            "status": "pending",
            "pick": None,
            "confidenceLow": None,
            "confidenceHigh": None,
            **extra,
        }
        self.slates.setdefault(slate_id, []).append(game_id)
        return game_id

    async def get_game(self, game_id):
        game = self.games.get(game_id)
        return copy.deepcopy(game) if game else None

    async def get_games(self, slate_id):
        return [copy.deepcopy(self.games[g]) for g in self.slates.get(slate_id, [])]

    async def get_active_framework(self):
        return copy.deepcopy(self.framework)

    async def get_evidence(self, game_id, category=None):
        return copy.deepcopy(self.evidence.get(game_id, []))

    async def update_game(self, game_id, data):
        self.games[game_id].update(data)
        return copy.deepcopy(self.games[game_id])

    async def replace_why_factors(self, game_id, items):
        self.replace_calls += 1
        self.why_factors[game_id] = []
        if self.replace_delay:
            await asyncio.sleep(self.replace_delay)
        self.why_factors[game_id].extend(copy.deepcopy(list(items)))
        return self.why_factors[game_id]


@pytest.fixture
def fake_store(monkeypatch):
    store = FakeStore(framework={"id": "fw-1", "version": 3, "isActive": True, "weights": {}})
    monkeypatch.setattr(analysis, "store", store)
    return store
