from datetime import datetime

import pytest

from config import GameConfig
from progression import new_state

# Thursday
NOW = datetime(2026, 3, 12, 10, 0, 0)


@pytest.fixture
def cfg():
    return GameConfig()


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def state(now, cfg):
    return new_state(now, cfg)
