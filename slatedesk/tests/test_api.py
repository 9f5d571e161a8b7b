"""End-to-end API tests against a temporary SQLite database."""
import csv
import io

import pytest

from slatedesk.routers import slate_routes
from slatedesk.services import research


@pytest.fixture
def framework(client):
    response = client.post("/api/frameworks", json={"name": "QB heavy", "weights": {"qbRating": 100}})
    assert response.status_code == 201
    return response.json()


@pytest.fixture
def slate(client):
    response = client.post("/api/slates", json={"name": "Week 12"})
    assert response.status_code == 201
    return response.json()


@pytest.fixture
def game(client, slate):
    response = client.post(f"/api/slates/{slate['id']}/games", json={"homeTeam": "Alabama", "awayTeam": "Auburn"})
    assert response.status_code == 201
    return response.json()


class TestService:
    def test_health(self, client):
        assert client.get("/health").json() == {"ok": True}

    def test_status_reports_keys(self, client):
        data = client.get("/status").json()
        assert data["ok"] is True
        assert data["has_openai_key"] is False
        assert data["has_perplexity_key"] is False


class TestSlates:
    def test_defaults(self, slate):
        assert slate["sport"] == "NCAAF"
        assert slate["status"] == "draft"
        assert slate["gameCount"] == 0

    def test_crud(self, client, slate):
        sid = slate["id"]
        assert [s["id"] for s in client.get("/api/slates").json()] == [sid]

        patched = client.patch(f"/api/slates/{sid}", json={"name": "Week 13"}).json()
        assert patched["name"] == "Week 13"
        assert patched["status"] == "draft"

        assert client.delete(f"/api/slates/{sid}").status_code == 204
        assert client.get(f"/api/slates/{sid}").status_code == 404

    def test_missing_slate(self, client):
        assert client.get("/api/slates/nope").status_code == 404
        assert client.patch("/api/slates/nope", json={"name": "x"}).status_code == 404
        assert client.delete("/api/slates/nope").status_code == 404

    def test_null_on_required_field_rejected(self, client, slate):
        sid = slate["id"]
        assert client.patch(f"/api/slates/{sid}", json={"name": None}).status_code == 422
        assert client.patch(f"/api/slates/{sid}", json={"status": None}).status_code == 422
        assert client.patch(f"/api/slates/{sid}", json={"frameworkId": None}).status_code == 200
        assert client.get(f"/api/slates/{sid}").json()["name"] == "Week 12"

    def test_blank_team_rejected(self, client, slate):
        sid = slate["id"]
        assert client.post(f"/api/slates/{sid}/games", json={"homeTeam": "", "awayTeam": "Auburn"}).status_code == 422
        assert client.post(f"/api/slates/{sid}/games", json={"homeTeam": "Alabama", "awayTeam": "  "}).status_code == 422
        assert client.get(f"/api/slates/{sid}").json()["gameCount"] == 0

    def test_batch_games_update_count(self, client, slate):
        sid = slate["id"]
        response = client.post(
            f"/api/slates/{sid}/games/batch",
            json=[
                {"homeTeam": "Alabama", "awayTeam": "Auburn", "spread": -7.5},
                {"homeTeam": "Georgia", "awayTeam": "Florida"},
            ],
        )
        assert response.status_code == 201
        games = response.json()
        assert [g["homeTeam"] for g in games] == ["Alabama", "Georgia"]
        assert all(g["status"] == "pending" and g["isLocked"] is False for g in games)
        assert client.get(f"/api/slates/{sid}").json()["gameCount"] == 2
        assert len(client.get(f"/api/slates/{sid}/games").json()) == 2

    def test_delete_cascades(self, client, slate, game):
        client.post(f"/api/games/{game['id']}/evidence", json={"category": "qb", "source": "ESPN"})
        client.delete(f"/api/slates/{slate['id']}")
        assert client.get(f"/api/games/{game['id']}").status_code == 404
        assert client.get(f"/api/games/{game['id']}/evidence").json() == []

    def test_enrich_without_research_key(self, client, slate, game):
        data = client.post(f"/api/slates/{slate['id']}/enrich").json()
        assert data["enriched"] == 0
        assert data["slate"]["status"] == "ready"
        assert client.get(f"/api/games/{game['id']}").json()["status"] == "pending"

    def test_enrich_survives_malformed_findings(self, client, monkeypatch, slate):
        sid = slate["id"]
        client.post(
            f"/api/slates/{sid}/games/batch",
            json=[{"homeTeam": "Alabama", "awayTeam": "Auburn"}, {"homeTeam": "Georgia", "awayTeam": "Florida"}],
        )
        good = '{"findings": [{"category": "qb", "headline": "Georgia QB healthy", "snippet": "s", "source": "ESPN"}]}'

        async def fake_query(messages, max_tries=2):
            if "Alabama" in messages[-1]["content"]:
                return '{"findings": 3}', []
            return good, []

        monkeypatch.setattr(research, "_query_perplexity", fake_query)
        response = client.post(f"/api/slates/{sid}/enrich")

        assert response.status_code == 200
        data = response.json()
        assert (data["enriched"], data["failed"]) == (1, 0)
        assert data["slate"]["status"] == "ready"
        games = {g["homeTeam"]: g for g in client.get(f"/api/slates/{sid}/games").json()}
        assert client.get(f"/api/games/{games['Alabama']['id']}/evidence").json() == []
        [ev] = client.get(f"/api/games/{games['Georgia']['id']}/evidence").json()
        assert ev["headline"] == "Georgia QB healthy"
        assert all(g["status"] == "pending" for g in games.values())

    def test_enrich_isolates_failing_game(self, client, monkeypatch, slate):
        sid = slate["id"]
        client.post(
            f"/api/slates/{sid}/games/batch",
            json=[{"homeTeam": "Alabama", "awayTeam": "Auburn"}, {"homeTeam": "Georgia", "awayTeam": "Florida"}],
        )

        async def flaky_research(home, away):
            if home == "Alabama":
                raise RuntimeError("research down")
            return {"findings": [{"category": "qb", "headline": "h", "snippet": "s", "source": "ESPN"}], "citations": []}

        monkeypatch.setattr(slate_routes, "research_game", flaky_research)
        data = client.post(f"/api/slates/{sid}/enrich").json()

        assert (data["enriched"], data["failed"]) == (1, 1)
        assert data["slate"]["status"] == "ready"
        statuses = [g["status"] for g in client.get(f"/api/slates/{sid}/games").json()]
        assert statuses == ["pending", "pending"]


class TestGames:
    def test_patch_and_delete(self, client, slate, game):
        gid = game["id"]
        patched = client.patch(f"/api/games/{gid}", json={"notes": "watch weather", "total": 48.5}).json()
        assert patched["notes"] == "watch weather"
        assert patched["total"] == 48.5
        assert client.patch(f"/api/games/{gid}", json={"homeTeam": None}).status_code == 422
        assert client.patch(f"/api/games/{gid}", json={"isLocked": None}).status_code == 422
        assert client.patch(f"/api/games/{gid}", json={"awayTeam": ""}).status_code == 422
        assert client.get(f"/api/games/{gid}").json()["homeTeam"] == "Alabama"

        assert client.delete(f"/api/games/{gid}").status_code == 204
        assert client.get(f"/api/slates/{slate['id']}").json()["gameCount"] == 0

    def test_lock_unlock(self, client, game):
        gid = game["id"]
        locked = client.post(f"/api/games/{gid}/lock").json()
        assert locked["isLocked"] is True
        assert locked["status"] == "locked"

        unlocked = client.post(f"/api/games/{gid}/unlock").json()
        assert unlocked["isLocked"] is False
        assert unlocked["status"] == "pending"

    def test_override(self, client, game):
        data = client.post(
            f"/api/games/{game['id']}/override",
            json={"pick": "Auburn", "pickLine": 7.5, "overrideReason": "Gut call"},
        ).json()
        assert data["status"] == "override"
        assert data["pick"] == "Auburn"
        assert data["overrideReason"] == "Gut call"

    def test_evidence_filter(self, client, game):
        gid = game["id"]
        client.post(f"/api/games/{gid}/evidence", json={"category": "qb", "source": "ESPN", "headline": "a"})
        client.post(
            f"/api/games/{gid}/evidence",
            json={"category": "injury", "source": "CBS", "citations": [{"url": "https://x"}]},
        )
        assert len(client.get(f"/api/games/{gid}/evidence").json()) == 2
        [ev] = client.get(f"/api/games/{gid}/evidence", params={"category": "injury"}).json()
        assert ev["citations"] == [{"url": "https://x"}]
        assert ev["type"] == "news"

    def test_manual_why_factor(self, client, game):
        gid = game["id"]
        body = {"category": "coaching", "contribution": 0.2, "keyFacts": ["New OC"]}
        assert client.post(f"/api/games/{gid}/why-factors", json=body).status_code == 201
        [wf] = client.get(f"/api/games/{gid}/why-factors").json()
        assert wf["keyFacts"] == ["New OC"]

        assert client.delete(f"/api/games/{gid}/why-factors").status_code == 204
        assert client.get(f"/api/games/{gid}/why-factors").json() == []
        assert client.delete("/api/games/nope/why-factors").status_code == 404

    def test_research_topic_requires_topic(self, client, game):
        assert client.post(f"/api/games/{game['id']}/research-topic", json={}).status_code == 400

    def test_research_without_key_adds_nothing(self, client, game):
        data = client.post(f"/api/games/{game['id']}/research").json()
        assert data == {"evidence": [], "citations": []}

    def test_missing_game(self, client):
        assert client.get("/api/games/nope").status_code == 404
        assert client.post("/api/games/nope/lock").status_code == 404
        assert client.post("/api/games/nope/analyze").status_code == 404


class TestAnalysisFlow:
    def test_analyze_without_framework_is_404(self, client, game):
        response = client.post(f"/api/games/{game['id']}/analyze")
        assert response.status_code == 404
        assert "framework" in response.json()["detail"]

    def test_analyze_lock_export(self, client, framework, slate, game):
        gid = game["id"]
        client.post(
            f"/api/games/{gid}/evidence",
            json={"category": "qb injury", "source": "ESPN", "headline": "Auburn starter injured"},
        )

        preview = client.get(f"/api/games/{gid}/analysis").json()
        assert preview["pick"] == "Alabama"
        assert client.get(f"/api/games/{gid}/why-factors").json() == []

        data = client.post(f"/api/games/{gid}/analyze").json()
        assert data["game"]["pick"] == "Alabama"
        assert data["game"]["status"] == "ready"
        assert data["game"]["confidenceLow"] == 51
        assert data["game"]["confidenceHigh"] == 67
        assert data["game"]["frameworkVersion"] == 1
        [wf] = data["whyFactors"]
        assert wf["category"] == "qbRating"

        # second run replaces rather than appends
        client.post(f"/api/games/{gid}/analyze")
        assert len(client.get(f"/api/games/{gid}/why-factors").json()) == 1

        client.post(f"/api/games/{gid}/lock")
        response = client.get(f"/api/slates/{slate['id']}/export")
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        rows = list(csv.reader(io.StringIO(response.text)))
        assert rows[0] == ["Game", "Pick", "Line", "Edge", "Confidence", "Notes"]
        assert rows[1] == ["Auburn @ Alabama", "Alabama", "", "", "51-67%", ""]

    def test_export_skips_unlocked(self, client, slate, game):
        rows = list(csv.reader(io.StringIO(client.get(f"/api/slates/{slate['id']}/export").text)))
        assert len(rows) == 1

    def test_analyze_slate(self, client, framework, slate):
        sid = slate["id"]
        client.post(
            f"/api/slates/{sid}/games/batch",
            json=[{"homeTeam": "Alabama", "awayTeam": "Auburn"}, {"homeTeam": "Georgia", "awayTeam": "Florida"}],
        )
        data = client.post(f"/api/slates/{sid}/analyze").json()
        # no evidence and no home field weight: nothing to pick
        assert data["analyzed"] == 2
        assert all(g["pick"] is None and g["status"] == "pending" for g in data["games"])


class TestFrameworks:
    def test_default_weights_and_single_active(self, client):
        first = client.post("/api/frameworks", json={"name": "A"}).json()
        assert first["weights"]["qbRating"] == 20
        assert first["version"] == 1

        second = client.post("/api/frameworks", json={"name": "B"}).json()
        assert client.get("/api/frameworks/active").json()["id"] == second["id"]
        assert client.get(f"/api/frameworks/{first['id']}").json()["isActive"] is False

        client.patch(f"/api/frameworks/{first['id']}", json={"isActive": True})
        assert client.get("/api/frameworks/active").json()["id"] == first["id"]

    def test_weight_change_bumps_version(self, client, framework):
        fid = framework["id"]
        rule = {
            "name": "Fade big favorites",
            "condition": {"field": "spread", "operator": "lessThan", "value": -20},
            "action": {"type": "adjustConfidence", "value": -5},
        }
        assert client.post(f"/api/frameworks/{fid}/rules", json=rule).status_code == 201

        renamed = client.patch(f"/api/frameworks/{fid}", json={"name": "Renamed"}).json()
        assert renamed["version"] == 1

        updated = client.patch(
            f"/api/frameworks/{fid}",
            json={"weights": {"qbRating": 60, "defense": 40}, "changelog": "add defense"},
        ).json()
        assert updated["version"] == 2

        [snapshot] = client.get(f"/api/frameworks/{fid}/versions").json()
        assert snapshot["version"] == 2
        assert snapshot["changelog"] == "add defense"
        assert snapshot["weights"] == {"qbRating": 60, "defense": 40}
        assert [r["name"] for r in snapshot["rules"]] == ["Fade big favorites"]

    def test_null_weights_rejected_without_bump(self, client, framework):
        fid = framework["id"]
        assert client.patch(f"/api/frameworks/{fid}", json={"weights": None}).status_code == 422
        assert client.patch(f"/api/frameworks/{fid}", json={"isActive": None}).status_code == 422
        current = client.get(f"/api/frameworks/{fid}").json()
        assert current["version"] == 1
        assert current["weights"] == {"qbRating": 100}
        assert client.get(f"/api/frameworks/{fid}/versions").json() == []

    def test_null_rule_fields_rejected(self, client, framework):
        rule = client.post(
            f"/api/frameworks/{framework['id']}/rules",
            json={
                "name": "Flag rivalry",
                "condition": {"field": "notes", "operator": "contains", "value": "rivalry"},
                "action": {"type": "flag", "value": "rivalry"},
            },
        ).json()
        assert client.patch(f"/api/framework-rules/{rule['id']}", json={"priority": None}).status_code == 422
        assert client.patch(f"/api/framework-rules/{rule['id']}", json={"condition": None}).status_code == 422

    def test_weights_validated(self, client):
        response = client.post("/api/frameworks", json={"name": "Bad", "weights": {"qbRating": 150}})
        assert response.status_code == 422

    def test_rule_crud(self, client, framework):
        fid = framework["id"]
        rule = client.post(
            f"/api/frameworks/{fid}/rules",
            json={
                "name": "Flag rivalry",
                "condition": {"field": "notes", "operator": "contains", "value": "rivalry"},
                "action": {"type": "flag", "value": "rivalry"},
            },
        ).json()
        assert rule["isEnabled"] is True
        assert rule["priority"] == 0

        patched = client.patch(f"/api/framework-rules/{rule['id']}", json={"isEnabled": False}).json()
        assert patched["isEnabled"] is False

        assert client.delete(f"/api/framework-rules/{rule['id']}").status_code == 204
        assert client.get(f"/api/frameworks/{fid}/rules").json() == []

    def test_no_active_framework(self, client):
        assert client.get("/api/frameworks/active").status_code == 404


class TestIntake:
    def test_ocr_requires_input(self, client):
        assert client.post("/api/ocr/text", json={}).status_code == 400
        assert client.post("/api/ocr/image", json={}).status_code == 400

    def test_ocr_without_key_is_bad_gateway(self, client):
        response = client.post("/api/ocr/text", json={"text": "Alabama -7.5 vs Auburn"})
        assert response.status_code == 502

    def test_upcoming_search_without_key(self, client):
        data = client.get("/api/upcoming-games/search", params={"sport": "nba"}).json()
        assert data["games"] == []
        assert data["sport"] == "nba"
        assert data["searchQuery"] == "upcoming NBA games this week"

    def test_upcoming_rejects_unknown_sport(self, client):
        assert client.get("/api/upcoming-games/search", params={"sport": "cricket"}).status_code == 422

    def test_factor_catalog(self, client):
        data = client.get("/api/factors").json()
        assert data["factors"][0] == "qbRating"
        assert sum(data["defaultWeights"].values()) == 100
