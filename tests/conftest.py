"""
Pytest configuration and shared fixtures.

The app module reads its configuration at import time, so the database and
Socket.IO async mode are pinned here before anything imports it.
"""

import os
import sys
from pathlib import Path

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SOCKETIO_ASYNC_MODE"] = "threading"

PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

import pytest

import app as app_module
from game.logic import GameEngine


class FakeClock:
    """Manually advanced clock returning seconds, like time.time."""

    def __init__(self, start=1_700_000_000.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def engine(clock):
    return GameEngine(clock=clock)


@pytest.fixture
def flask_app():
    """
    Fixture providing the app with a freshly created, empty database.
    """
    app_module.app.config["TESTING"] = True
    with app_module.app.app_context():
        app_module.db.drop_all()
        app_module.db.create_all()
    app_module.rooms.clear()
    yield app_module.app
    app_module.rooms.clear()
    with app_module.app.app_context():
        app_module.db.session.remove()


@pytest.fixture
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture
def socket_client(flask_app):
    sc = app_module.socketio.test_client(flask_app)
    yield sc
    if sc.is_connected():
        sc.disconnect()


def play(engine, positions):
    """Apply positions in order and return the list of results."""
    return [engine.apply_move(p) for p in positions]


def summary_dict(winner="X", moves=None, final_board=None, duration=1200):
    if moves is None:
        moves = [
            {"player": "X", "position": 0, "timestamp": 1000},
            {"player": "O", "position": 1, "timestamp": 1100},
            {"player": "X", "position": 4, "timestamp": 1200},
            {"player": "O", "position": 2, "timestamp": 1300},
            {"player": "X", "position": 8, "timestamp": 1400},
        ]
    if final_board is None:
        final_board = ["X", "O", "O", "", "X", "", "", "", "X"]
    return {"winner": winner, "moves": moves, "finalBoard": final_board, "duration": duration}
