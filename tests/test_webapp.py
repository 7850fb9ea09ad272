"""API tests against the FastAPI app with a seeded database."""

import pytest
from fastapi import WebSocketDisconnect
from fastapi.testclient import TestClient

from fleetrank.config import config
from fleetrank.store import get_store
from fleetrank.webapp import app, sign_auth_data, validate_auth_data

from .helpers import seed_file

EMAILS = {
    "alice": "alice@example.com",
    "bob": "bob@example.com",
    "carol": "carol@example.com",
    "lee": "lee@axanar.com",
}


@pytest.fixture
def api(tmp_path, monkeypatch):
    db = tmp_path / "api.db"
    ids = seed_file(db)
    monkeypatch.setattr(config, "data_file", str(db))
    monkeypatch.setattr(config, "xp_recalc_minutes", 0)
    with TestClient(app) as client:
        yield client, ids


def auth(ids, who):
    return {"X-Auth-Data": sign_auth_data(ids[who], EMAILS[who])}


# ─── Auth ────────────────────────────────────────────────────────────────────


class TestAuth:

    def test_round_trip(self):
        assert validate_auth_data(sign_auth_data(7, "x@example.com")) == {
            "user_id": 7, "email": "x@example.com",
        }

    def test_tampered_payload(self):
        signed = sign_auth_data(7, "x@example.com")
        assert validate_auth_data(signed.replace("user_id=7", "user_id=8")) is None

    def test_expired(self):
        assert validate_auth_data(sign_auth_data(7, "x@example.com", auth_date=1)) is None

    def test_missing_hash(self):
        assert validate_auth_data("user_id=7&auth_date=1") is None

    def test_missing_header(self, api):
        client, _ = api
        assert client.get("/api/rank/me").status_code == 401

    def test_garbage_header(self, api):
        client, _ = api
        resp = client.get("/api/rank/me", headers={"X-Auth-Data": "not-a-payload"})
        assert resp.status_code == 401

    def test_unknown_user(self, api):
        client, _ = api
        headers = {"X-Auth-Data": sign_auth_data(9999, "ghost@example.com")}
        assert client.get("/api/rank/me", headers=headers).status_code == 401


def test_health(api):
    client, _ = api
    resp = client.get("/api/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"


# ─── Ranks ───────────────────────────────────────────────────────────────────


class TestRank:

    def test_donor_rank(self, api):
        client, ids = api
        data = client.get("/api/rank/me", headers=auth(ids, "alice")).json()
        assert data["user_id"] == ids["alice"]
        assert data["total_pledged"] == 200.0
        assert data["rank"]["name"] == "Lieutenant"
        assert data["rank"]["progress_to_next"] == pytest.approx(66.6667, abs=1e-3)
        assert data["rank"]["is_overridden"] is False
        assert data["is_admin"] is False
        assert data["primary_title"] is None

    def test_member_without_pledges(self, api):
        client, ids = api
        data = client.get(f"/api/rank/{ids['bob']}").json()
        assert data["rank"]["name"] == "Crewman"
        assert data["rank"]["progress_to_next"] == 0.0
        assert data["community_rank"]["current"]["slug"] == "cadet"

    def test_admin_override(self, api):
        client, ids = api
        data = client.get(f"/api/rank/{ids['carol']}").json()
        assert data["is_admin"] is True
        assert data["rank"]["name"] == "Fleet Admiral"
        assert data["rank"]["progress_to_next"] == 100.0
        assert data["rank"]["is_overridden"] is True

    def test_platform_team_override(self, api):
        client, ids = api
        data = client.get("/api/rank/me", headers=auth(ids, "lee")).json()
        assert data["is_platform_team"] is True
        assert data["is_admin"] is False
        assert data["rank"]["name"] == "Fleet Admiral"

    def test_forum_rank_lifts_military_rank(self, api):
        client, ids = api
        # 25000 forum rank points beat bob's zero pledges
        client.portal.call(assign_forum_rank, ids["bob"], "commander")
        data = client.get(f"/api/rank/{ids['bob']}").json()
        assert data["forum_rank"]["slug"] == "commander"
        assert data["rank"]["name"] == "Lieutenant Commander"

    def test_unknown_user(self, api):
        client, _ = api
        assert client.get("/api/rank/9999").status_code == 404


async def assign_forum_rank(user_id, slug):
    return await get_store().assign_forum_rank(user_id, slug)


# ─── Forum, activity, leaderboard ────────────────────────────────────────────


class TestCommunity:

    def test_forum_xp(self, api):
        client, ids = api
        resp = client.post("/api/forum/xp", json={"action": "create_thread"}, headers=auth(ids, "bob"))
        assert resp.status_code == 200
        assert resp.json() == {"ok": True, "xp_awarded": 100, "forum_xp": 100}

        resp = client.post(
            "/api/forum/xp",
            json={"action": "post_reply", "word_count": 600, "has_media": True},
            headers=auth(ids, "bob"),
        )
        assert resp.json()["xp_awarded"] == 48
        assert resp.json()["forum_xp"] == 148

    def test_unknown_forum_action(self, api):
        client, ids = api
        resp = client.post("/api/forum/xp", json={"action": "summon_q"}, headers=auth(ids, "bob"))
        assert resp.status_code == 400
        assert resp.json()["detail"] == "unknown_action"

    def test_forum_xp_validates_body(self, api):
        client, ids = api
        resp = client.post(
            "/api/forum/xp", json={"action": "post_reply", "word_count": -5}, headers=auth(ids, "bob")
        )
        assert resp.status_code == 422

    def test_activity_heartbeat(self, api):
        client, ids = api
        data = client.post("/api/activity", headers=auth(ids, "bob")).json()
        assert data["current_streak_days"] == 1
        assert data["longest_streak_days"] == 1
        assert 20 <= data["pulse_score"] <= 100

    def test_leaderboard(self, api):
        client, ids = api
        data = client.get("/api/leaderboard", params={"user_id": ids["alice"]}).json()
        assert data["category"] == "total_donated"
        assert data["leaderboard"][0]["user_id"] == ids["alice"]
        assert data["user_position"]["position"] == 1

    def test_leaderboard_without_position(self, api):
        client, ids = api
        data = client.get("/api/leaderboard", params={"user_id": ids["bob"]}).json()
        assert data["user_position"] is None

    def test_leaderboard_bad_params(self, api):
        client, _ = api
        assert client.get("/api/leaderboard", params={"category": "tribbles"}).status_code == 400
        assert client.get("/api/leaderboard", params={"limit": "lots"}).status_code == 400


# ─── Titles & admin ──────────────────────────────────────────────────────────


class TestTitlesAndAdmin:

    def test_recalculate_requires_admin(self, api):
        client, ids = api
        assert client.post("/api/admin/recalculate", headers=auth(ids, "alice")).status_code == 403
        # Platform team members are not admins
        assert client.post("/api/admin/recalculate", headers=auth(ids, "lee")).status_code == 403

    def test_titles_after_recalculation(self, api):
        client, ids = api
        resp = client.post("/api/admin/recalculate", headers=auth(ids, "carol"))
        assert resp.json() == {"ok": True, "users_processed": 4}

        data = client.get(f"/api/titles/{ids['alice']}").json()
        by_slug = {t["slug"]: t for t in data["titles"]}
        assert set(by_slug) == {"supporter", "patron"}

        patron_id = by_slug["patron"]["title_id"]
        resp = client.post("/api/titles/primary", json={"title_id": patron_id}, headers=auth(ids, "alice"))
        assert resp.status_code == 200
        assert client.get(f"/api/titles/{ids['alice']}").json()["primary_title"]["slug"] == "patron"

        rank = client.get("/api/rank/me", headers=auth(ids, "alice")).json()
        assert rank["xp"]["unified_xp"] == 20025
        assert rank["primary_title"]["slug"] == "patron"
        assert rank["title_buffs"] == {
            "xp_multiplier": 1.0, "forum_xp_bonus": 150, "participation_xp_bonus": 100,
        }

        resp = client.post(
            "/api/titles/display",
            json={"title_id": patron_id, "is_displayed": False},
            headers=auth(ids, "alice"),
        )
        assert resp.status_code == 200

    def test_cannot_claim_unheld_title(self, api):
        client, ids = api
        client.post("/api/admin/recalculate", headers=auth(ids, "carol"))
        title_id = client.get(f"/api/titles/{ids['alice']}").json()["titles"][0]["title_id"]
        resp = client.post("/api/titles/primary", json={"title_id": title_id}, headers=auth(ids, "bob"))
        assert resp.status_code == 404

    def test_analytics(self, api):
        client, ids = api
        assert client.get("/api/admin/analytics", headers=auth(ids, "alice")).status_code == 403
        assert client.get("/api/admin/analytics").status_code == 401

        data = client.get("/api/admin/analytics", headers=auth(ids, "carol")).json()
        assert data["overview"]["total_pledges"] == 3
        assert data["overview"]["average_donation"] == pytest.approx(110.0)
        assert data["top_donors"][0]["name"] == "Alice A."
        assert data["trends"] == {"donors_growth": 0, "revenue_growth": 0, "pledge_growth": 0}


# ─── Tactical ────────────────────────────────────────────────────────────────


class TestTactical:

    def test_turn_over_http(self, api):
        client, ids = api
        state = client.post("/api/tactical/games", json={"name": "Skirmish"}, headers=auth(ids, "bob")).json()
        game_id = state["game"]["id"]
        assert state["game"]["gm_user_id"] == ids["bob"]
        assert state["ships"] == []

        ship = client.post(
            f"/api/tactical/games/{game_id}/ships",
            json={"name": "USS Ares", "shields": 10},
            headers=auth(ids, "alice"),
        ).json()["ship"]
        assert ship["owner_user_id"] == ids["alice"]

        # Only the GM places ships for other players
        resp = client.post(
            f"/api/tactical/games/{game_id}/ships",
            json={"name": "Borrowed", "owner_user_id": ids["lee"]},
            headers=auth(ids, "alice"),
        )
        assert resp.status_code == 403
        resp = client.post(
            f"/api/tactical/games/{game_id}/ships",
            json={"name": "Kelvar's Fury", "owner_user_id": ids["lee"]},
            headers=auth(ids, "bob"),
        )
        assert resp.status_code == 200

        moves_url = f"/api/tactical/games/{game_id}/moves"
        empty = client.post(moves_url, json={"ship_id": ship["id"], "actions": []}, headers=auth(ids, "alice"))
        assert empty.status_code == 400

        move = client.post(
            moves_url, json={"ship_id": ship["id"], "actions": [{"type": "fire"}]}, headers=auth(ids, "alice")
        )
        assert move.status_code == 200
        move_id = move.json()["move_id"]
        again = client.post(
            moves_url, json={"ship_id": ship["id"], "actions": [{"type": "fire"}]}, headers=auth(ids, "alice")
        )
        assert again.status_code == 409
        assert again.json()["detail"] == "already_submitted"

        state = client.get(f"/api/tactical/games/{game_id}", headers=auth(ids, "lee")).json()
        assert [m["id"] for m in state["pending_moves"]] == [move_id]

        assert client.post(f"/api/tactical/games/{game_id}/lock", headers=auth(ids, "alice")).status_code == 403
        assert client.post(f"/api/tactical/games/{game_id}/lock", headers=auth(ids, "bob")).status_code == 200

        resp = client.post(
            f"/api/tactical/moves/{move_id}/resolve",
            json={"damage": 30, "note": "phaser hit"},
            headers=auth(ids, "bob"),
        )
        assert resp.status_code == 200

        state = client.post(f"/api/tactical/games/{game_id}/end-turn", headers=auth(ids, "bob")).json()
        assert state["game"]["current_turn"] == 2
        assert state["game"]["is_locked"] is False
        assert state["pending_moves"] == []
        ares = next(s for s in state["ships"] if s["id"] == ship["id"])
        assert (ares["hull"], ares["shields"]) == (80, 0)
        assert state["events"][0]["payload"]["note"] == "phaser hit"

    def test_unknown_game(self, api):
        client, ids = api
        assert client.get("/api/tactical/games/404", headers=auth(ids, "bob")).status_code == 404
        resp = client.post("/api/tactical/games/404/lock", headers=auth(ids, "bob"))
        assert resp.status_code == 404

    def test_requires_auth(self, api):
        client, _ = api
        assert client.post("/api/tactical/games", json={"name": "x"}).status_code == 401

    def test_admin_places_ships_for_others(self, api):
        client, ids = api
        game_id = client.post(
            "/api/tactical/games", json={"name": "Patrol"}, headers=auth(ids, "bob")
        ).json()["game"]["id"]
        resp = client.post(
            f"/api/tactical/games/{game_id}/ships",
            json={"name": "Ajax", "owner_user_id": ids["lee"]},
            headers=auth(ids, "carol"),
        )
        assert resp.status_code == 200
        assert resp.json()["ship"]["owner_user_id"] == ids["lee"]

    def test_feed_pushes_change_notices(self, api):
        client, ids = api
        game_id = client.post(
            "/api/tactical/games", json={"name": "Live"}, headers=auth(ids, "bob")
        ).json()["game"]["id"]
        with client.websocket_connect(f"/ws/tactical/{game_id}") as ws:
            client.post(
                f"/api/tactical/games/{game_id}/ships", json={"name": "Ares"}, headers=auth(ids, "alice")
            )
            assert ws.receive_json() == {"type": "ship_added", "game_id": game_id, "turn": 1}

    def test_feed_for_unknown_game(self, api):
        client, _ = api
        with pytest.raises(WebSocketDisconnect) as exc:
            with client.websocket_connect("/ws/tactical/404"):
                pass
        assert exc.value.code == 4404
