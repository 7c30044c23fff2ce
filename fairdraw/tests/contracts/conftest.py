"""
Shared pytest fixtures for fairdraw contract tests.

Engines are seeded so statistical tests are reproducible. Real files are only
written below pytest's tmp_path.
"""

import pytest

from fairdraw.draw_logic.balanced_draw import BalancedDraw
from fairdraw.draw_logic.plane import BalancedDrawPlane
from fairdraw.state.draw_state_store import DrawStateStore
from fairdraw.tests.contracts.test_doubles import FakeDrawStateStore

SEED = 20240501

FAIRDRAW_ENV_VARS = [
    "FAIRDRAW_ENV_FILE",
    "FAIRDRAW_STATE_PATH",
    "FAIRDRAW_AUTO_SAVE",
    "FAIRDRAW_MIN_POOL_SIZE",
    "FAIRDRAW_MAX_GAP_THRESHOLD",
    "FAIRDRAW_COLD_START_BOOST",
    "FAIRDRAW_DECAY_FACTOR",
    "FAIRDRAW_SEED",
    "FAIRDRAW_LOG_LEVEL",
    "FAIRDRAW_LOG_FILE",
]


@pytest.fixture
def engine():
    """Engine over 1..5 with the reference tuning (pool 3, gap 5, boost 2.0, decay 0.7)."""
    return BalancedDraw.from_range(1, 5, min_pool_size=3, max_gap_threshold=5,
                                   cold_start_boost=2.0, decay_factor=0.7, rng=SEED)


@pytest.fixture
def plane():
    """3 x 4 grid with the reference tuning."""
    return BalancedDrawPlane(3, 4, min_pool_size=3, max_gap_threshold=5,
                             cold_start_boost=2.0, decay_factor=0.7, rng=SEED)


@pytest.fixture
def fake_store():
    """In-memory state store."""
    return FakeDrawStateStore()


@pytest.fixture
def failing_store():
    """In-memory state store whose saves always fail."""
    return FakeDrawStateStore(fail_on_save=True)


@pytest.fixture
def state_path(tmp_path):
    return tmp_path / "balanced_rand_data.json"


@pytest.fixture
def file_store(state_path):
    """Real JSON state store in a temporary directory."""
    return DrawStateStore(str(state_path))


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    """
    Remove every FAIRDRAW_* variable for the duration of a test.

    Each variable is set and then deleted so monkeypatch also removes values
    that load_dotenv writes into os.environ during the test.
    """
    for name in FAIRDRAW_ENV_VARS:
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)
    monkeypatch.setenv("FAIRDRAW_ENV_FILE", str(tmp_path / "missing.env"))
    return monkeypatch
