from __future__ import annotations

import os
from typing import Any, Optional

from pydantic import BaseModel, Field

from errors import ConfigurationError
from models import Coordinate
from utils import mask_secret


class Configuration(BaseModel):
    # Google Places (New) + Geocoding
    places_api_key: Optional[str] = Field(default=None)
    places_base_url: str = Field(default="https://places.googleapis.com")
    geocoding_base_url: str = Field(default="https://maps.googleapis.com")
    places_timeout: float = Field(default=10.0)
    places_max_results: int = Field(default=20)
    lang_default: str = Field(default="en")

    # Defaults
    default_radius_miles: float = Field(default=10.0)
    # San Francisco, used when the location provider fails
    default_lat: float = Field(default=37.7749)
    default_lng: float = Field(default=-122.4194)

    # Shuffle animation
    shuffle_ticks: int = Field(default=30)
    shuffle_interval_ms: int = Field(default=100)

    # Sessions
    session_ttl_sec: int = Field(default=3600)

    @classmethod
    def from_env(cls, overrides: Optional[dict[str, Any]] = None) -> "Configuration":
        raw: dict[str, Any] = {}

        env_map = {
            "places_api_key": os.getenv("GOOGLE_PLACES_API_KEY"),
            "places_base_url": os.getenv("PLACES_BASE_URL"),
            "geocoding_base_url": os.getenv("GEOCODING_BASE_URL"),
            "places_timeout": os.getenv("PLACES_TIMEOUT"),
            "places_max_results": os.getenv("PLACES_MAX_RESULTS"),
            "lang_default": os.getenv("LANG_DEFAULT"),
            "default_radius_miles": os.getenv("DEFAULT_RADIUS_MILES"),
            "default_lat": os.getenv("DEFAULT_LAT"),
            "default_lng": os.getenv("DEFAULT_LNG"),
            "shuffle_ticks": os.getenv("SHUFFLE_TICKS"),
            "shuffle_interval_ms": os.getenv("SHUFFLE_INTERVAL_MS"),
            "session_ttl_sec": os.getenv("SESSION_TTL_SEC"),
        }

        for k, v in env_map.items():
            if v is None or v == "":
                continue
            raw[k] = v

        if overrides:
            raw.update({k: v for k, v in overrides.items() if v is not None})

        return cls(**raw)

    def require_places(self) -> None:
        if not self.places_api_key:
            raise ConfigurationError(
                "Google Places API key not configured. Please set GOOGLE_PLACES_API_KEY environment variable."
            )

    @property
    def default_origin(self) -> Coordinate:
        return Coordinate(latitude=self.default_lat, longitude=self.default_lng)

    @property
    def shuffle_interval(self) -> float:
        return self.shuffle_interval_ms / 1000.0

    def log_summary(self) -> str:
        return (
            "places=%s base=%s timeout=%s max_results=%s lang_default=%s ticks=%s interval_ms=%s api_key=%s"
            % (
                bool(self.places_api_key),
                self.places_base_url,
                self.places_timeout,
                self.places_max_results,
                self.lang_default,
                self.shuffle_ticks,
                self.shuffle_interval_ms,
                mask_secret(self.places_api_key),
            )
        )
