"""
league.py
---------

Typed repository over the backend contract: users, players, rounds, fantasy
teams, scouts, ranking and the dashboard.

All reads and writes go through backend.Backend. Multi-step writes (saving a
lineup, closing a round) are plain sequences of calls; if one step fails the
BackendError propagates and earlier steps are not rolled back.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, Iterable, List, Optional, Tuple

import config  # type: ignore[import]
from backend import AuthSession, Backend, eq, escape_like, in_, ilike, neq  # type: ignore[import]
from models import Player, Round, RoundStatus, SCOUT_FIELDS, User  # type: ignore[import]
from roster import Roster  # type: ignore[import]
from scoring import calculate_new_price, calculate_points, lineup_points  # type: ignore[import]
from validation import ValidationError, check_player, check_team_squad  # type: ignore[import]

logger = logging.getLogger(__name__)


class NotFoundError(LookupError):
    pass


class LeagueRepository:

    def __init__(self, backend: Backend):
        self.backend = backend

    # ------------------------------------------------------------------
    # users
    # ------------------------------------------------------------------

    def get_user(self, user_id: str) -> Optional[User]:
        row = self.backend.fetch_one("users", [eq("id", user_id)])
        return User.from_row(row) if row else None

    def create_profile(self, session: AuthSession, team_name: str) -> User:
        rows = self.backend.insert_rows(
            "users",
            [
                {
                    "id": session.user_id,
                    "email": session.email,
                    "team_name": team_name.strip(),
                    "role": "user",
                    "cartoletas": config.INITIAL_BALANCE,
                    "total_points": 0,
                }
            ],
        )
        logger.info("Created profile for %s (%s)", session.email, team_name)
        return User.from_row(rows[0])

    def ranking(self, limit: int = config.RANKING_LIMIT) -> List[User]:
        rows = self.backend.fetch_rows(
            "users",
            order=[("total_points", False), ("team_name", True)],
            limit=limit,
        )
        return [User.from_row(r) for r in rows]

    # ------------------------------------------------------------------
    # players
    # ------------------------------------------------------------------

    def list_players(
        self,
        position: Optional[str] = None,
        team: Optional[str] = None,
        search: Optional[str] = None,
        active_only: bool = False,
    ) -> List[Player]:
        filters = []
        if position:
            filters.append(eq("position", position.upper()))
        if team:
            filters.append(eq("team", team))
        if search:
            filters.append(ilike("name", f"%{escape_like(search)}%"))
        if active_only:
            filters.append(eq("active", True))
        rows = self.backend.fetch_rows(
            "players", filters, order=[("position", True), ("price", True), ("name", True)]
        )
        return [Player.from_row(r) for r in rows]

    def get_player(self, player_id: str) -> Player:
        row = self.backend.fetch_one("players", [eq("id", player_id)])
        if not row:
            raise NotFoundError(f"Player {player_id} not found")
        return Player.from_row(row)

    def players_by_id(self, ids: Iterable[str]) -> Dict[str, Player]:
        ids = sorted({str(i) for i in ids})
        if not ids:
            return {}
        rows = self.backend.fetch_rows("players", [in_("id", ids)])
        return {str(r["id"]): Player.from_row(r) for r in rows}

    def team_names(self) -> List[str]:
        rows = self.backend.fetch_rows("players", order=[("team", True)])
        return sorted({r["team"] for r in rows})

    def create_player(self, data: Dict[str, Any]) -> Player:
        row = self.backend.insert_rows("players", [check_player(data)])[0]
        return Player.from_row(row)

    def update_player(self, player_id: str, data: Dict[str, Any]) -> Player:
        self.get_player(player_id)
        self.backend.update_rows("players", check_player(data), [eq("id", player_id)])
        return self.get_player(player_id)

    def delete_player(self, player_id: str) -> Player:
        player = self.get_player(player_id)
        self.backend.delete_rows("players", [eq("id", player_id)])
        logger.info("Deleted player %s (%s)", player.name, player.team)
        return player

    def create_squad(self, team_name: str, players: List[Dict[str, Any]]) -> List[Player]:
        cleaned = check_team_squad(team_name, players)
        existing = self.backend.fetch_rows(
            "players", [ilike("team", escape_like(cleaned[0]["team"]))], limit=1
        )
        if existing:
            logger.warning("Team %r already has players; adding %d more", team_name, len(cleaned))
        rows = self.backend.insert_rows("players", cleaned)
        return [Player.from_row(r) for r in rows]

    def delete_squad(self, team_name: str) -> int:
        rows = self.backend.fetch_rows("players", [eq("team", team_name)])
        if not rows:
            raise NotFoundError(f"Team {team_name!r} not found")
        self.backend.delete_rows("players", [eq("team", team_name)])
        return len(rows)

    # ------------------------------------------------------------------
    # settings
    # ------------------------------------------------------------------

    def budget_limit(self) -> float:
        row = self.backend.fetch_one("game_settings")
        if not row or row.get("budget_limit") is None:
            return config.DEFAULT_BUDGET_LIMIT
        return float(row["budget_limit"])

    def set_budget_limit(self, value: float) -> float:
        if value <= 0:
            raise ValidationError("Budget limit must be positive")
        row = self.backend.fetch_one("game_settings")
        if row:
            self.backend.update_rows("game_settings", {"budget_limit": value}, [eq("id", row["id"])])
        else:
            self.backend.insert_rows("game_settings", [{"budget_limit": value}])
        return value

    # ------------------------------------------------------------------
    # rounds
    # ------------------------------------------------------------------

    def list_rounds(self) -> List[Round]:
        rows = self.backend.fetch_rows("rounds", order=[("created_at", False)])
        return [Round.from_row(r) for r in rows]

    def get_round(self, round_id: str) -> Round:
        row = self.backend.fetch_one("rounds", [eq("id", round_id)])
        if not row:
            raise NotFoundError(f"Round {round_id} not found")
        return Round.from_row(row)

    def _latest_round(self, status: str) -> Optional[Round]:
        row = self.backend.fetch_one(
            "rounds", [eq("status", status)], order=[("created_at", False)]
        )
        return Round.from_row(row) if row else None

    def open_round(self) -> Optional[Round]:
        """The round lineups are being picked for: the newest upcoming one."""
        return self._latest_round(RoundStatus.UPCOMING)

    def last_finished_round(self) -> Optional[Round]:
        return self._latest_round(RoundStatus.FINISHED)

    def create_round(self, name: str) -> Round:
        name = (name or "").strip()
        if not name:
            raise ValidationError("Round name is required")
        row = self.backend.insert_rows(
            "rounds", [{"name": name, "status": RoundStatus.UPCOMING}]
        )[0]
        return Round.from_row(row)

    def rename_round(self, round_id: str, name: str) -> Round:
        name = (name or "").strip()
        if not name:
            raise ValidationError("Round name is required")
        self.get_round(round_id)
        self.backend.update_rows("rounds", {"name": name}, [eq("id", round_id)])
        return self.get_round(round_id)

    def delete_round(self, round_id: str) -> Round:
        """
        Delete the round with its fantasy teams and scouts, then recompute the
        totals of the users who had a team in it. Prices already revalued by
        the round are kept.
        """
        rnd = self.get_round(round_id)
        teams = self.backend.fetch_rows("fantasy_teams", [eq("round_id", round_id)])
        for team in teams:
            self.backend.delete_rows("team_players", [eq("fantasy_team_id", team["id"])])
        if teams:
            self.backend.delete_rows("fantasy_teams", [eq("round_id", round_id)])
        self.backend.delete_rows("scouts", [eq("round_id", round_id)])
        self.backend.delete_rows("rounds", [eq("id", round_id)])

        for user_id in sorted({str(t["user_id"]) for t in teams}):
            self.refresh_user_total(user_id)
        logger.info("Round %r deleted with %d fantasy teams", rnd.name, len(teams))
        return rnd

    def activate_round(self, round_id: str) -> Round:
        """
        Make this round the single active one; any other active round goes
        back to upcoming. Finished rounds are left alone.
        """
        rnd = self.get_round(round_id)
        self.backend.update_rows(
            "rounds",
            {"status": RoundStatus.UPCOMING},
            [eq("status", RoundStatus.ACTIVE), neq("id", round_id)],
        )
        self.backend.update_rows("rounds", {"status": RoundStatus.ACTIVE}, [eq("id", round_id)])
        logger.info("Round %r activated", rnd.name)
        return self.get_round(round_id)

    def reopen_round(self, round_id: str) -> Round:
        rnd = self.get_round(round_id)
        if rnd.status != RoundStatus.FINISHED:
            raise ValidationError(f"Round {rnd.name!r} is not finished")
        return self.activate_round(round_id)

    def finish_round(self, round_id: str) -> Dict[str, Any]:
        rnd = self.get_round(round_id)
        if rnd.status == RoundStatus.FINISHED:
            raise ValidationError(f"Round {rnd.name!r} is already finished")
        self.backend.update_rows("rounds", {"status": RoundStatus.FINISHED}, [eq("id", round_id)])
        summary = self.settle_round(round_id)
        logger.info(
            "Round %r finished: %d teams scored, %d prices updated",
            rnd.name, summary["teams"], summary["prices_updated"],
        )
        return summary

    # ------------------------------------------------------------------
    # scouts + settlement
    # ------------------------------------------------------------------

    def record_scouts(self, round_id: str, entries: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """
        Store one scout per player for the round, replacing any earlier one.
        Points are computed here from the raw counts.
        """
        self.get_round(round_id)
        rows = []
        seen = set()
        for entry in entries:
            player_id = entry.get("player_id")
            if not player_id:
                raise ValidationError("Every scout needs a player_id")
            if str(player_id) in seen:
                raise ValidationError(f"Player {player_id} appears more than once")
            seen.add(str(player_id))
            stats = {f: int(entry.get(f) or 0) for f in SCOUT_FIELDS}
            if any(v < 0 for v in stats.values()):
                raise ValidationError("Scout counts cannot be negative")
            rows.append(
                {
                    "round_id": round_id,
                    "player_id": str(player_id),
                    **stats,
                    "points": calculate_points(stats),
                }
            )
        if not rows:
            return []
        known = self.players_by_id(r["player_id"] for r in rows)
        unknown = [r["player_id"] for r in rows if r["player_id"] not in known]
        if unknown:
            raise ValidationError(f"Unknown players: {', '.join(unknown)}")

        player_ids = [r["player_id"] for r in rows]
        earlier = self.backend.fetch_rows(
            "scouts", [eq("round_id", round_id), in_("player_id", player_ids)]
        )
        # A replaced scout keeps the price its player had before the round was settled.
        price_before = {
            str(s["player_id"]): s["price_before"]
            for s in earlier
            if s.get("price_before") is not None
        }
        for row in rows:
            row["price_before"] = price_before.get(row["player_id"])

        self.backend.delete_rows(
            "scouts", [eq("round_id", round_id), in_("player_id", player_ids)]
        )
        return self.backend.insert_rows("scouts", rows)

    def scouts_for_round(self, round_id: str) -> List[Dict[str, Any]]:
        return self.backend.fetch_rows("scouts", [eq("round_id", round_id)])

    def top_scouts(self, round_id: str, limit: int = config.TOP_SCOUTS_LIMIT) -> List[Dict[str, Any]]:
        rows = self.backend.fetch_rows(
            "scouts", [eq("round_id", round_id)], order=[("points", False)], limit=limit
        )
        players = self.players_by_id(r["player_id"] for r in rows)
        out = []
        for r in rows:
            p = players.get(str(r["player_id"]))
            out.append({**r, "player": p})
        return out

    def settle_round(self, round_id: str) -> Dict[str, Any]:
        """
        Score every fantasy team of the round from its scouts, refresh each
        affected user's total, and revalue the scouted players.
        """
        scouts = self.scouts_for_round(round_id)
        scout_points = {str(s["player_id"]): float(s.get("points") or 0.0) for s in scouts}

        teams = self.backend.fetch_rows("fantasy_teams", [eq("round_id", round_id)])
        users = set()
        for team in teams:
            entries = self.backend.fetch_rows("team_players", [eq("fantasy_team_id", team["id"])])
            for entry in entries:
                pts = scout_points.get(str(entry["player_id"]), 0.0)
                self.backend.update_rows("team_players", {"points": pts}, [eq("id", entry["id"])])
            total = lineup_points(entries, scout_points)
            self.backend.update_rows("fantasy_teams", {"total_points": total}, [eq("id", team["id"])])
            users.add(str(team["user_id"]))

        for user_id in sorted(users):
            self.refresh_user_total(user_id)

        players = self.players_by_id(scout_points)
        updated = 0
        for scout in scouts:
            player_id = str(scout["player_id"])
            player = players.get(player_id)
            if player is None:
                continue
            # Revalue from the price before this round's first settlement, so
            # reopening and finishing again does not compound the change.
            base = scout.get("price_before")
            if base is None:
                base = player.price
                self.backend.update_rows("scouts", {"price_before": base}, [eq("id", scout["id"])])
            new_price = calculate_new_price(float(base), scout_points[player_id])
            if new_price != player.price:
                self.backend.update_rows("players", {"price": new_price}, [eq("id", player_id)])
                updated += 1

        return {"round_id": round_id, "teams": len(teams), "users": len(users), "prices_updated": updated}

    def refresh_user_total(self, user_id: str) -> float:
        teams = self.backend.fetch_rows("fantasy_teams", [eq("user_id", user_id)])
        total = round(sum(float(t.get("total_points") or 0.0) for t in teams), 2)
        self.backend.update_rows("users", {"total_points": total}, [eq("id", user_id)])
        return total

    # ------------------------------------------------------------------
    # lineups
    # ------------------------------------------------------------------

    def load_roster(self, user_id: str, round_id: str) -> Tuple[Optional[Dict[str, Any]], Roster]:
        """Saved fantasy team row (or None) and its roster for one round."""
        limit = self.budget_limit()
        team = self.backend.fetch_one(
            "fantasy_teams", [eq("user_id", user_id), eq("round_id", round_id)]
        )
        if not team:
            return None, Roster(budget_limit=limit)
        entries = self.backend.fetch_rows("team_players", [eq("fantasy_team_id", team["id"])])
        players = self.players_by_id(e["player_id"] for e in entries)
        return team, Roster.from_rows(entries, players, budget_limit=limit)

    def build_roster(
        self,
        assignments: Dict[str, Optional[str]],
        captain_id: Optional[str] = None,
    ) -> Roster:
        players = self.players_by_id(pid for pid in assignments.values() if pid)
        return Roster.build(assignments, players, captain_id, budget_limit=self.budget_limit())

    def save_lineup(self, user: User, round_id: str, roster: Roster) -> Dict[str, Any]:
        """
        Replace the user's fantasy team for the round: delete the old one,
        insert the new team, then its players.
        """
        rnd = self.get_round(round_id)
        if rnd.status != RoundStatus.UPCOMING:
            raise ValidationError(f"Round {rnd.name!r} is closed for lineups")
        roster.check_complete()

        old = self.backend.fetch_rows(
            "fantasy_teams", [eq("user_id", user.id), eq("round_id", round_id)]
        )
        for team in old:
            self.backend.delete_rows("team_players", [eq("fantasy_team_id", team["id"])])
        if old:
            self.backend.delete_rows(
                "fantasy_teams", [eq("user_id", user.id), eq("round_id", round_id)]
            )

        team = self.backend.insert_rows(
            "fantasy_teams",
            [
                {
                    "user_id": user.id,
                    "round_id": round_id,
                    "team_name": user.team_name,
                    "budget_used": roster.starter_cost(),
                    "total_points": 0,
                }
            ],
        )[0]
        self.backend.insert_rows("team_players", roster.to_rows(team["id"]))
        logger.info(
            "Lineup saved for %s in round %r (budget used %.2f)",
            user.team_name, rnd.name, roster.starter_cost(),
        )
        return team

    def user_history(self, user_id: str) -> List[Dict[str, Any]]:
        teams = self.backend.fetch_rows(
            "fantasy_teams", [eq("user_id", user_id)], order=[("created_at", False)]
        )
        round_ids = sorted({str(t["round_id"]) for t in teams})
        rounds: Dict[str, Round] = {}
        if round_ids:
            rounds = {
                str(r["id"]): Round.from_row(r)
                for r in self.backend.fetch_rows("rounds", [in_("id", round_ids)])
            }
        return [{**t, "round": rounds.get(str(t["round_id"]))} for t in teams]

    # ------------------------------------------------------------------
    # admin + dashboard
    # ------------------------------------------------------------------

    def stats(self) -> Dict[str, int]:
        players = self.backend.fetch_rows("players")
        return {
            "players": len(players),
            "active_players": sum(1 for p in players if p.get("active")),
            "teams": len({p["team"] for p in players}),
            "rounds": len(self.backend.fetch_rows("rounds")),
            "users": len(self.backend.fetch_rows("users")),
        }

    def _last_round_highlights(self) -> Dict[str, Any]:
        rnd = self.last_finished_round()
        if rnd is None:
            return {"round": None, "scouts": []}
        return {"round": rnd, "scouts": self.top_scouts(rnd.id)}

    def dashboard(self, user_id: str) -> Dict[str, Any]:
        """
        Independent dashboard queries, issued together and joined before
        returning. Any failure propagates.
        """
        with ThreadPoolExecutor(max_workers=config.DASHBOARD_WORKERS) as pool:
            ranking_f = pool.submit(self.ranking)
            rounds_f = pool.submit(self.list_rounds)
            highlights_f = pool.submit(self._last_round_highlights)
            history_f = pool.submit(self.user_history, user_id)
            ranking = ranking_f.result()
            rounds = rounds_f.result()
            highlights = highlights_f.result()
            history = history_f.result()

        position = next((i + 1 for i, u in enumerate(ranking) if u.id == user_id), None)
        return {
            "ranking": ranking,
            "position": position,
            "rounds": rounds,
            "last_round": highlights["round"],
            "top_scouts": highlights["scouts"],
            "history": history,
        }
