"""Shared fixtures: a simulated board behind a small whitelist."""

import threading
from unittest.mock import MagicMock

import pytest

from hypibole.board import Board
from hypibole.executor import BoardExecutor
from hypibole.gpio import SimulatedGpioAdapter
from hypibole.http_server import HttpServer
from hypibole.pin_registry import PinRegistry


# ──────────────────────────── Whitelist ──────────────────────────
#   4, 6: get + set     7: get only     8: set only     P1-7 -> 4


@pytest.fixture
def registry():
    return PinRegistry.from_whitelist(
        gets=[],
        sets=[],
        simgets=[4, 6, 7],
        simsets=[4, 6, 8],
        header={"P1-7": 4},
    )


@pytest.fixture
def sim():
    """Simulated adapter wrapped so calls can be asserted on."""
    return MagicMock(wraps=SimulatedGpioAdapter())


@pytest.fixture
def board(sim):
    board = Board(simulated=sim, hardware_factory=MagicMock(side_effect=AssertionError("no hardware in tests")))
    yield board
    board.close()


@pytest.fixture
def executor(registry, board):
    return BoardExecutor(registry, board)


@pytest.fixture
def live_server(executor):
    """HTTP server on a free localhost port, served from a background thread."""
    server = HttpServer(executor, "127.0.0.1", 0)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    yield server
    server.stop()
    thread.join(timeout=5)
