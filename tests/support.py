import os
import sys
import tempfile
from pathlib import Path

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from models import Player
from sqlite_backend import SqliteBackend


def make_player(pid, position, price, name=None, team="Team A", active=True):
    return Player(
        id=pid,
        name=name or f"Player {pid}",
        position=position,
        team=team,
        price=price,
        active=active,
    )


class TempBackendMixin:
    """Gives each test a fresh SQLite backend in a temporary directory."""

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.db_path = Path(self._tmp.name) / "league.db"
        self.backend = SqliteBackend(self.db_path)

    def tearDown(self):
        self._tmp.cleanup()


SQUAD = [
    {"name": "Goleiro A", "position": "GOL", "price": 8.0},
    {"name": "Fixo A", "position": "FIX", "price": 9.0},
    {"name": "Ala Um", "position": "ALA", "price": 7.0},
    {"name": "Ala Dois", "position": "ALA", "price": 6.0},
    {"name": "Ala Tres", "position": "ALA", "price": 5.0},
    {"name": "Pivo A", "position": "PIV", "price": 9.0},
]
