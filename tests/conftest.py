"""Shared test fixtures for chronos."""

import sys
from datetime import datetime, timedelta
from pathlib import Path

import pytest

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from cli.config_models import LearningConfig  # noqa: E402
from learning.engine import LearningEngine  # noqa: E402
from learning.models import InteractionContext  # noqa: E402
from learning.repository import InMemoryRepository  # noqa: E402
from observability import metrics  # noqa: E402

# Wednesday afternoon
BASE_TIME = datetime(2024, 3, 6, 14, 0, 0)


class FakeClock:
    """Manually advanced clock injected into the engine."""

    def __init__(self, start: datetime = BASE_TIME):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


def make_context(**overrides) -> InteractionContext:
    fields = {
        "time_of_day": "afternoon",
        "day_of_week": 2,
        "day_type": "weekday",
        "current_load": "moderate",
        "energy_indicator": "high",
    }
    fields.update(overrides)
    return InteractionContext(**fields)


@pytest.fixture(autouse=True)
def reset_metrics():
    metrics.reset()
    yield
    metrics.reset()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def repository():
    return InMemoryRepository()


@pytest.fixture
def config():
    return LearningConfig()


@pytest.fixture
def engine(config, repository, clock):
    return LearningEngine(config=config, repository=repository, clock=clock)


@pytest.fixture
def context():
    return make_context()
