from __future__ import annotations

import asyncio
import math
from unittest.mock import MagicMock

import pytest
import requests

from config import Configuration
from errors import ConfigurationError, NetworkError, UpstreamError
from models import Coordinate
from services.candidate_search import fetch_candidates, fetch_candidates_async, parse_place
from services.filters import by_distance
from services.places import BASELINE_EXCLUDED_TYPES, PlacesClient


ORIGIN = Coordinate(37.7749, -122.4194)
MILES_PER_DEGREE_LAT = 3958.8 * math.pi / 180.0


def _place_north(place_id: str, name: str, miles: float, **extra) -> dict:
    raw = {
        "id": place_id,
        "displayName": {"text": name, "languageCode": "en"},
        "formattedAddress": f"{place_id} Main St, San Francisco, CA",
        "location": {
            "latitude": ORIGIN.latitude + miles / MILES_PER_DEGREE_LAT,
            "longitude": ORIGIN.longitude,
        },
        "types": ["restaurant", "food", "point_of_interest"],
    }
    raw.update(extra)
    return raw


def _response(status: int = 200, payload=None, reason: str = "OK") -> MagicMock:
    resp = MagicMock()
    resp.status_code = status
    resp.ok = 200 <= status < 300
    resp.reason = reason
    if isinstance(payload, Exception):
        resp.json.side_effect = payload
    else:
        resp.json.return_value = payload
    return resp


def _client(cfg: Configuration, resp=None, exc=None) -> PlacesClient:
    http = MagicMock()
    if exc is not None:
        http.request.side_effect = exc
    else:
        http.request.return_value = resp
    return PlacesClient(cfg, session=http)


def test_request_shape(cfg: Configuration) -> None:
    client = _client(cfg, _response(payload={"places": []}))
    fetch_candidates(cfg, ORIGIN, 10, {"mexican", "thai"}, 0, client=client)

    args, kwargs = client.session.request.call_args
    assert args[0] == "POST"
    assert args[1] == "https://places.googleapis.com/v1/places:searchNearby"
    assert kwargs["timeout"] == cfg.places_timeout
    headers = kwargs["headers"]
    assert headers["X-Goog-Api-Key"] == cfg.places_api_key
    assert "places.displayName" in headers["X-Goog-FieldMask"]

    body = kwargs["json"]
    circle = body["locationRestriction"]["circle"]
    assert circle["center"] == {"latitude": 37.7749, "longitude": -122.4194}
    assert circle["radius"] == pytest.approx(16093.4)
    assert body["includedTypes"] == ["restaurant"]
    assert body["maxResultCount"] == 20
    assert body["rankPreference"] == "DISTANCE"
    for t in BASELINE_EXCLUDED_TYPES:
        assert t in body["excludedTypes"]
    assert "mexican_restaurant" in body["excludedTypes"]
    assert "thai_restaurant" in body["excludedTypes"]


def test_max_result_count_is_capped() -> None:
    cfg = Configuration(places_api_key="k", places_max_results=50)
    client = PlacesClient(cfg, session=MagicMock())
    body = client.build_nearby_request(ORIGIN, 1.0)
    assert body["maxResultCount"] == 20


def test_missing_key_fails_without_network() -> None:
    cfg = Configuration(places_api_key=None)
    client = _client(cfg, _response(payload={"places": []}))
    with pytest.raises(ConfigurationError):
        fetch_candidates(cfg, ORIGIN, 10, client=client)
    client.session.request.assert_not_called()


def test_upstream_error_carries_service_message(cfg: Configuration) -> None:
    payload = {"error": {"code": 403, "message": "API key not valid.", "status": "PERMISSION_DENIED"}}
    client = _client(cfg, _response(403, payload, reason="Forbidden"))
    with pytest.raises(UpstreamError) as info:
        fetch_candidates(cfg, ORIGIN, 10, client=client)
    assert "API key not valid." in str(info.value)
    assert info.value.status_code == 403


def test_upstream_error_without_json_uses_reason(cfg: Configuration) -> None:
    client = _client(cfg, _response(500, ValueError("no json"), reason="Internal Server Error"))
    with pytest.raises(UpstreamError) as info:
        fetch_candidates(cfg, ORIGIN, 10, client=client)
    assert "Internal Server Error" in str(info.value)


@pytest.mark.parametrize(
    "exc",
    [requests.Timeout("timed out"), requests.ConnectionError("reset"), requests.RequestException("dns")],
)
def test_transport_failures_are_network_errors(cfg: Configuration, exc: Exception) -> None:
    client = _client(cfg, exc=exc)
    with pytest.raises(NetworkError):
        fetch_candidates(cfg, ORIGIN, 10, client=client)


def test_distances_and_end_to_end_radius(cfg: Configuration) -> None:
    places = [
        _place_north("a", "Near Cafe", 0.5, rating=4.2),
        _place_north("b", "Mid Diner", 5.0),
        _place_north("c", "Far Grill", 15.0, rating=3.9),
    ]
    client = _client(cfg, _response(payload={"places": places}))
    results = fetch_candidates(cfg, ORIGIN, 10, set(), 0, client=client)

    assert [c.distance_miles for c in results] == pytest.approx([0.5, 5.0, 15.0], rel=1e-6)
    kept = by_distance(results, 10)
    assert [c.id for c in kept] == ["a", "b"]


def test_missing_fields_default(cfg: Configuration) -> None:
    raw = {"id": "x", "displayName": {"text": "Bare"}, "location": {"latitude": 37.78, "longitude": -122.41}}
    c = parse_place(raw, ORIGIN)
    assert c is not None
    assert c.address == ""
    assert c.rating == 0.0
    assert c.category_tags == frozenset()
    assert not c.is_rated


def test_records_without_location_or_name_are_skipped(cfg: Configuration) -> None:
    places = [
        {"id": "noloc", "displayName": {"text": "Nowhere"}},
        {"id": "noname", "location": {"latitude": 37.78, "longitude": -122.41}},
        _place_north("ok", "Somewhere", 1.0),
    ]
    client = _client(cfg, _response(payload={"places": places}))
    results = fetch_candidates(cfg, ORIGIN, 10, client=client)
    assert [c.id for c in results] == ["ok"]


def test_min_rating_floor_applied(cfg: Configuration) -> None:
    places = [
        _place_north("unrated", "Unrated", 1.0),
        _place_north("low", "Low", 1.0, rating=2.5),
        _place_north("high", "High", 1.0, rating=4.5),
    ]
    client = _client(cfg, _response(payload={"places": places}))
    assert [c.id for c in fetch_candidates(cfg, ORIGIN, 10, min_rating=0, client=client)] == [
        "unrated",
        "low",
        "high",
    ]
    assert [c.id for c in fetch_candidates(cfg, ORIGIN, 10, min_rating=3, client=client)] == ["high"]


def test_empty_response_is_empty_list(cfg: Configuration) -> None:
    client = _client(cfg, _response(payload={}))
    assert fetch_candidates(cfg, ORIGIN, 10, client=client) == []


def test_async_fetch(cfg: Configuration) -> None:
    client = _client(cfg, _response(payload={"places": [_place_north("a", "Async Eats", 2.0)]}))
    results = asyncio.run(fetch_candidates_async(cfg, ORIGIN, 10, client=client))
    assert [c.name for c in results] == ["Async Eats"]
