from __future__ import annotations

import pytest

from config import Configuration
from errors import ConfigurationError


def test_from_env_reads_and_overrides(monkeypatch) -> None:
    monkeypatch.setenv("GOOGLE_PLACES_API_KEY", "abcd1234efgh5678")
    monkeypatch.setenv("PLACES_TIMEOUT", "7.5")
    monkeypatch.setenv("SHUFFLE_TICKS", "12")
    monkeypatch.delenv("DEFAULT_RADIUS_MILES", raising=False)

    cfg = Configuration.from_env({"shuffle_interval_ms": 50})
    assert cfg.places_api_key == "abcd1234efgh5678"
    assert cfg.places_timeout == 7.5
    assert cfg.shuffle_ticks == 12
    assert cfg.shuffle_interval == pytest.approx(0.05)
    assert cfg.default_radius_miles == 10.0


def test_defaults_match_shuffle_timing(monkeypatch) -> None:
    for name in ("SHUFFLE_TICKS", "SHUFFLE_INTERVAL_MS", "PLACES_TIMEOUT"):
        monkeypatch.delenv(name, raising=False)
    cfg = Configuration.from_env()
    assert cfg.shuffle_ticks == 30
    assert cfg.shuffle_interval == pytest.approx(0.1)
    assert cfg.places_timeout == 10.0


def test_require_places() -> None:
    with pytest.raises(ConfigurationError):
        Configuration(places_api_key=None).require_places()
    Configuration(places_api_key="k").require_places()


def test_log_summary_masks_key() -> None:
    summary = Configuration(places_api_key="abcd1234efgh5678").log_summary()
    assert "abcd1234efgh5678" not in summary
    assert "abcd...5678" in summary
