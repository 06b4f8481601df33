# import_scouts.py
#
# Bulk-load one round's scouts from a CSV sheet and (optionally) close the
# round, which scores every fantasy team and revalues the players.
#
#   python import_scouts.py ROUND_ID scouts.csv [--finish] [--dry-run]
#
# The sheet identifies players either by a `player_id` column or by `name` +
# `team`; stat columns missing from the sheet count as zero.

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, List, Tuple, Union

import pandas as pd  # type: ignore[import]

import config  # type: ignore[import]
from backend import Backend, build_backend  # type: ignore[import]
from formatting import format_points  # type: ignore[import]
from league import LeagueRepository  # type: ignore[import]
from models import Player, SCOUT_FIELDS  # type: ignore[import]
from scoring import calculate_points  # type: ignore[import]
from validation import ValidationError  # type: ignore[import]

logger = logging.getLogger(__name__)

# Header aliases seen in match sheets.
COLUMN_ALIASES: Dict[str, str] = {
    "id": "player_id",
    "jogador": "name",
    "player": "name",
    "nome": "name",
    "time": "team",
    "gols": "goals",
    "assistencias": "assists",
    "finalizacoes": "shots_on_target",
    "defesas": "saves",
    "sg": "clean_sheet",
    "gols_contra": "own_goals",
    "cartao_vermelho": "red_cards",
    "faltas": "fouls",
}


def _norm(raw: str) -> str:
    return " ".join(str(raw).split()).lower()


def read_sheet(path: Union[str, Path]) -> pd.DataFrame:
    """
    Read a scouts CSV and normalise its headers / stat columns.
    """
    df = pd.read_csv(path)
    df.columns = [COLUMN_ALIASES.get(_norm(c).replace(" ", "_"), _norm(c).replace(" ", "_"))
                  for c in df.columns]
    if "player_id" not in df.columns and not {"name", "team"} <= set(df.columns):
        raise ValidationError("Sheet needs a player_id column or name + team columns")

    for field in SCOUT_FIELDS:
        if field not in df.columns:
            df[field] = 0
        df[field] = pd.to_numeric(df[field], errors="coerce").fillna(0).astype(int)
    return df


def resolve_players(df: pd.DataFrame, players: List[Player]) -> Tuple[List[Dict], List[str]]:
    """
    Turn sheet rows into scout entries. Returns (entries, unmatched labels).
    """
    by_id = {p.id: p for p in players}
    by_name_team = {(_norm(p.name), _norm(p.team)): p for p in players}

    entries: List[Dict] = []
    unmatched: List[str] = []
    for _, row in df.iterrows():
        player = None
        if "player_id" in df.columns and pd.notna(row.get("player_id")):
            player = by_id.get(str(row["player_id"]).strip())
        if player is None and "name" in df.columns and "team" in df.columns:
            player = by_name_team.get((_norm(row.get("name", "")), _norm(row.get("team", ""))))
        if player is None:
            label = row.get("player_id") if "player_id" in df.columns else None
            unmatched.append(str(label if label is not None and pd.notna(label)
                                 else f"{row.get('name')} ({row.get('team')})"))
            continue
        entries.append({"player_id": player.id, **{f: int(row[f]) for f in SCOUT_FIELDS}})
    return entries, unmatched


def import_scouts(backend: Backend, round_id: str, path: Union[str, Path],
                  finish: bool = False, dry_run: bool = False) -> Dict:
    repo = LeagueRepository(backend)
    rnd = repo.get_round(round_id)
    df = read_sheet(path)
    entries, unmatched = resolve_players(df, repo.list_players())
    for label in unmatched:
        logger.warning("No player matches sheet row %s; skipped", label)

    if dry_run:
        return {"round": rnd, "recorded": 0, "entries": entries, "unmatched": unmatched}

    rows = repo.record_scouts(round_id, entries)
    result = {"round": rnd, "recorded": len(rows), "entries": entries, "unmatched": unmatched}
    if finish:
        result["settlement"] = repo.finish_round(round_id)
    return result


def print_import_report(result: Dict, players: Dict[str, Player]) -> None:
    rnd = result["round"]
    print("\n============================================================")
    print(f"Scouts for round {rnd.name} ({rnd.status})")
    print("============================================================\n")
    for e in sorted(result["entries"], key=calculate_points, reverse=True):
        p = players.get(e["player_id"])
        name = p.name if p else e["player_id"]
        print(
            f"{name:<22} G {e['goals']:>2}  A {e['assists']:>2}  "
            f"F {e['fouls']:>2}  PTS {format_points(calculate_points(e)):>6}"
        )
    if result["unmatched"]:
        print("\nUnmatched rows:")
        for label in result["unmatched"]:
            print(f"  - {label}")
    print(f"\nRecorded {result['recorded']} scouts.")
    if "settlement" in result:
        s = result["settlement"]
        print(f"Round closed: {s['teams']} teams scored, {s['prices_updated']} prices updated.")
    print("\n============================================================\n")


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(
        description="Import one round's scouts from a CSV sheet."
    )
    parser.add_argument("round_id", help="Id of the round the scouts belong to")
    parser.add_argument("csv", help="Path to the scouts CSV")
    parser.add_argument("--finish", action="store_true",
                        help="Close the round after importing (scores teams, revalues players)")
    parser.add_argument("--dry-run", action="store_true",
                        help="Parse and match the sheet without writing anything")
    parser.add_argument("--backend", default=config.BACKEND, help="supabase or sqlite")

    args = parser.parse_args()
    config.configure_logging()
    backend = build_backend(args.backend)
    result = import_scouts(backend, args.round_id, args.csv, finish=args.finish, dry_run=args.dry_run)
    print_import_report(result, LeagueRepository(backend).players_by_id(
        e["player_id"] for e in result["entries"]
    ))
