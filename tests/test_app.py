import unittest

from fastapi.testclient import TestClient

from support import SQUAD, TempBackendMixin

import config
from app import app, get_backend
from backend import eq


class ApiTestCase(TempBackendMixin, unittest.TestCase):
    def setUp(self):
        super().setUp()
        app.dependency_overrides[get_backend] = lambda: self.backend
        self.client = TestClient(app)

    def tearDown(self):
        app.dependency_overrides.clear()
        super().tearDown()

    def register(self, client, team_name, email, password="secret1"):
        resp = client.post(
            "/auth/register",
            json={"team_name": team_name, "email": email, "password": password},
        )
        self.assertEqual(resp.status_code, 200, resp.text)
        return resp.json()

    def make_admin(self, user_id):
        self.backend.update_rows("users", {"role": "admin"}, [eq("id", user_id)])


class TestAuth(ApiTestCase):
    def test_health_is_public(self):
        resp = self.client.get("/health")
        self.assertEqual(resp.json()["status"], "ok")

    def test_register_sets_session_cookie(self):
        user = self.register(self.client, "Os Craques", "craque@example.com")
        self.assertEqual(user["cartoletas"], config.INITIAL_BALANCE)
        self.assertIn(config.SESSION_COOKIE, self.client.cookies)

        me = self.client.get("/auth/me")
        self.assertEqual(me.status_code, 200)
        self.assertEqual(me.json()["email"], "craque@example.com")

    def test_duplicate_and_invalid_registration(self):
        self.register(self.client, "Os Craques", "craque@example.com")
        resp = self.client.post(
            "/auth/register",
            json={"team_name": "Outro", "email": "craque@example.com", "password": "secret1"},
        )
        self.assertEqual(resp.status_code, 400)

        resp = self.client.post(
            "/auth/register",
            json={"team_name": "Novo Time", "email": "novo@example.com", "password": "123"},
        )
        self.assertEqual(resp.status_code, 400)
        self.assertIn("6 characters", resp.json()["detail"])

    def test_login_and_logout(self):
        self.register(self.client, "Os Craques", "craque@example.com")
        self.client.post("/auth/logout")
        self.client.cookies.clear()
        self.assertEqual(self.client.get("/auth/me").status_code, 401)

        bad = self.client.post("/auth/login", json={"email": "craque@example.com", "password": "nope12"})
        self.assertEqual(bad.status_code, 401)

        ok = self.client.post("/auth/login", json={"email": "craque@example.com", "password": "secret1"})
        self.assertEqual(ok.status_code, 200)
        self.assertEqual(self.client.get("/auth/me").status_code, 200)

    def test_tampered_cookie_is_rejected(self):
        self.client.cookies.set(config.SESSION_COOKIE, "someone:123:abc:forged")
        self.assertEqual(self.client.get("/players").status_code, 401)

    def test_admin_routes_need_admin_role(self):
        self.register(self.client, "Os Craques", "craque@example.com")
        self.assertEqual(self.client.get("/admin/stats").status_code, 403)


class TestLeagueFlow(ApiTestCase):
    def setUp(self):
        super().setUp()
        admin = self.register(self.client, "Organizacao", "admin@example.com")
        self.make_admin(admin["id"])

        resp = self.client.post("/admin/teams", json={"team_name": "Azul", "players": SQUAD})
        self.assertEqual(resp.status_code, 200, resp.text)
        self.players = {p["name"]: p["id"] for p in resp.json()}

    def lineup(self):
        p = self.players
        return {
            "GOL": p["Goleiro A"],
            "FIX": p["Fixo A"],
            "ALA1": p["Ala Um"],
            "ALA2": p["Ala Dois"],
            "PIV": p["Pivo A"],
            "RES1": p["Ala Tres"],
        }

    def test_no_open_round(self):
        self.assertEqual(self.client.get("/lineup").status_code, 404)

    def test_market_lists_active_players(self):
        resp = self.client.get("/players", params={"position": "ALA"})
        self.assertEqual([p["price"] for p in resp.json()], [5.0, 6.0, 7.0])
        self.assertEqual(self.client.get("/players/teams").json(), ["Azul"])
        self.assertEqual(self.client.get("/settings").json(), {"budget_limit": config.DEFAULT_BUDGET_LIMIT})

    def test_check_change_reports_budget(self):
        self.client.put("/admin/settings", json={"budget_limit": 10.0})
        slots = {"GOL": self.players["Goleiro A"]}
        resp = self.client.post(
            "/lineup/check",
            json={"slots": slots, "action": "add", "player_id": self.players["Fixo A"]},
        )
        self.assertEqual(resp.status_code, 400)
        self.assertIn("Insufficient budget", resp.json()["detail"])

        resp = self.client.post(
            "/lineup/check",
            json={"slots": slots, "action": "add", "player_id": self.players["Goleiro A"], "starter": False},
        )
        self.assertEqual(resp.status_code, 400)

        resp = self.client.post("/lineup/check", json={"slots": slots, "action": "clear"})
        self.assertEqual(resp.json()["filled_slots"], 0)

    def test_stale_lineup_can_still_be_cleared_and_edited(self):
        fixo = self.players["Fixo A"]
        self.client.put(
            f"/admin/players/{fixo}",
            json={"name": "Fixo A", "position": "FIX", "team": "Azul", "price": 9.0, "active": False},
        )
        slots = {"GOL": self.players["Goleiro A"], "FIX": fixo}

        cleared = self.client.post("/lineup/check", json={"slots": slots, "action": "clear"})
        self.assertEqual(cleared.status_code, 200, cleared.text)
        self.assertEqual(cleared.json()["filled_slots"], 0)

        removed = self.client.post(
            "/lineup/check", json={"slots": slots, "action": "remove", "player_id": fixo}
        )
        self.assertEqual(removed.status_code, 200, removed.text)
        self.assertEqual(removed.json()["filled_slots"], 1)

        added = self.client.post(
            "/lineup/check",
            json={"slots": slots, "action": "add", "player_id": self.players["Pivo A"]},
        )
        self.assertEqual(added.status_code, 200, added.text)
        self.assertEqual(added.json()["filled_slots"], 3)

        # the stale player is still caught when the lineup is saved
        self.client.post("/admin/rounds", json={"name": "Rodada 1"})
        lineup = self.lineup()
        saved = self.client.put(
            "/lineup", json={"slots": lineup, "captain_id": self.players["Goleiro A"]}
        )
        self.assertEqual(saved.status_code, 400)

    def test_full_round(self):
        rnd = self.client.post("/admin/rounds", json={"name": "Rodada 1"}).json()
        self.assertEqual(rnd["status"], "upcoming")

        missing_captain = self.client.put("/lineup", json={"slots": self.lineup()})
        self.assertEqual(missing_captain.status_code, 400)

        saved = self.client.put(
            "/lineup", json={"slots": self.lineup(), "captain_id": self.players["Goleiro A"]}
        )
        self.assertEqual(saved.status_code, 200, saved.text)
        body = saved.json()
        self.assertEqual(body["starter_cost"], 39.0)
        self.assertEqual(body["remaining_budget"], 1.0)
        self.assertTrue(body["complete"])

        loaded = self.client.get("/lineup").json()
        self.assertEqual(loaded["captain_id"], self.players["Goleiro A"])
        self.assertEqual(loaded["filled_slots"], 6)

        scouts = self.client.post(
            f"/admin/rounds/{rnd['id']}/scouts",
            json={
                "scouts": [
                    {"player_id": self.players["Pivo A"], "goals": 2, "assists": 1, "fouls": 3},
                    {"player_id": self.players["Goleiro A"], "saves": 1, "clean_sheet": 1},
                    {"player_id": self.players["Ala Tres"], "goals": 1},
                ]
            },
        )
        self.assertEqual(sorted(s["points"] for s in scouts.json()), [8.0, 12.0, 20.1])

        finished = self.client.post(f"/admin/rounds/{rnd['id']}/finish").json()
        self.assertEqual(finished["round"]["status"], "finished")
        self.assertEqual(finished["teams"], 1)
        self.assertEqual(finished["prices_updated"], 3)

        again = self.client.post(f"/admin/rounds/{rnd['id']}/finish")
        self.assertEqual(again.status_code, 400)

        dash = self.client.get("/dashboard").json()
        self.assertEqual(dash["user"]["total_points"], 32.1)
        self.assertEqual(dash["position"], 1)
        self.assertEqual(dash["last_round"]["id"], rnd["id"])
        self.assertEqual(dash["top_scouts"][0]["player"]["name"], "Pivo A")
        self.assertEqual(dash["history"][0]["total_points"], 32.1)

        ranking = self.client.get("/ranking").json()
        self.assertEqual(ranking[0]["total_points"], 32.1)

        stats = self.client.get("/admin/stats").json()
        self.assertEqual(stats["rounds"], 1)

    def test_player_admin(self):
        created = self.client.post(
            "/admin/players",
            json={"name": "Reforco", "position": "PIV", "team": "Azul", "price": 4.5},
        )
        self.assertEqual(created.status_code, 200)
        pid = created.json()["id"]

        too_cheap = self.client.post(
            "/admin/players",
            json={"name": "Barato", "position": "PIV", "team": "Azul", "price": 0.1},
        )
        self.assertEqual(too_cheap.status_code, 400)

        updated = self.client.put(
            f"/admin/players/{pid}",
            json={"name": "Reforco", "position": "PIV", "team": "Azul", "price": 4.5, "active": False},
        )
        self.assertFalse(updated.json()["active"])
        names = [p["name"] for p in self.client.get("/players").json()]
        self.assertNotIn("Reforco", names)

        self.assertEqual(self.client.delete(f"/admin/players/{pid}").status_code, 200)
        self.assertEqual(self.client.delete(f"/admin/players/{pid}").status_code, 404)

    def test_round_admin(self):
        r1 = self.client.post("/admin/rounds", json={"name": "Rodada 1"}).json()
        r2 = self.client.post("/admin/rounds", json={"name": "Rodada 2"}).json()
        self.client.post(f"/admin/rounds/{r1['id']}/activate")
        active = self.client.post(f"/admin/rounds/{r2['id']}/activate").json()
        self.assertEqual(active["status"], "active")

        statuses = {r["id"]: r["status"] for r in self.client.get("/rounds").json()}
        self.assertEqual(statuses, {r1["id"]: "upcoming", r2["id"]: "active"})

        renamed = self.client.put(f"/admin/rounds/{r1['id']}", json={"name": "Rodada 1A"})
        self.assertEqual(renamed.json()["name"], "Rodada 1A")
        self.assertEqual(self.client.post(f"/admin/rounds/{r1['id']}/reopen").status_code, 400)
        self.assertEqual(self.client.delete(f"/admin/rounds/{r1['id']}").status_code, 200)
        self.assertEqual(self.client.post("/admin/rounds/missing/activate").status_code, 404)


if __name__ == '__main__':
    unittest.main()
