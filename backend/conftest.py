import sys
from pathlib import Path

import pytest


# Ensure backend/src is on sys.path for tests so that imports like `services.*` and `models` work.
ROOT = Path(__file__).resolve().parent
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from config import Configuration  # noqa: E402
from models import Candidate, Coordinate  # noqa: E402


@pytest.fixture
def cfg() -> Configuration:
    return Configuration(places_api_key="test-key-123456789", shuffle_ticks=5, shuffle_interval_ms=0)


@pytest.fixture
def make_candidate():
    def _make(
        id: str,
        name: str = "",
        *,
        distance_miles: float = 1.0,
        rating: float = 0.0,
        tags=(),
        address: str = "",
    ) -> Candidate:
        return Candidate(
            id=id,
            name=name or f"Place {id}",
            address=address,
            rating=rating,
            location=Coordinate(latitude=37.7749, longitude=-122.4194),
            distance_miles=distance_miles,
            category_tags=frozenset(tags),
        )

    return _make
