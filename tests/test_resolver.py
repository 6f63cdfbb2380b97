import dataclasses

import pytest
import requests

from gravi.core.errors import ResolutionError
from gravi.pipeline import resolver

DETAILS = {
    "name": "Fresh Mart",
    "formatted_address": "Main Road, Panjim",
    "geometry": {"location": {"lat": 15.3949851, "lng": 73.8163628}},
    "types": ["supermarket", "store"],
    "rating": 4.2,
    "user_ratings_total": 88,
    "photos": [{"photo_reference": "ref-1"}],
    "reviews": [],
}


@pytest.fixture
def places(monkeypatch):
    calls = {"find": [], "details": [], "redirect": []}
    state = {
        "candidates": [{"place_id": "pid-1", "name": "Fresh Mart"}],
        "redirect": "https://www.google.com/maps/place/Fresh+Mart/@15.3949851,73.8163628,17z",
    }

    def fake_find_place(query, api_key, location_bias=None, timeout=None):
        calls["find"].append({"query": query, "api_key": api_key, "bias": location_bias, "timeout": timeout})
        return {"status": "OK", "candidates": state["candidates"]}

    def fake_place_details(place_id, api_key, timeout=None):
        calls["details"].append(place_id)
        return DETAILS

    def fake_resolve_redirect(url, timeout=None):
        calls["redirect"].append(url)
        if isinstance(state["redirect"], Exception):
            raise state["redirect"]
        return state["redirect"]

    monkeypatch.setattr(resolver.google_places, "find_place", fake_find_place)
    monkeypatch.setattr(resolver.google_places, "place_details", fake_place_details)
    monkeypatch.setattr(resolver.google_places, "resolve_redirect", fake_resolve_redirect)
    return calls, state


def test_resolves_short_link_with_coordinate_bias(settings, places):
    calls, _ = places

    place = resolver.GeoResolver(settings, "sess").resolve("https://maps.app.goo.gl/xyz")

    assert place.identity.place_id == "pid-1"
    assert place.identity.name == "Fresh Mart"
    assert place.search_query == "Fresh Mart"
    assert calls["find"][0]["query"] == "Fresh Mart"
    assert calls["find"][0]["bias"] == "circle:50@15.3949851,73.8163628"
    assert calls["find"][0]["timeout"] == 15
    assert calls["details"] == ["pid-1"]


def test_free_text_query_is_used_verbatim(settings, places):
    calls, _ = places

    resolver.GeoResolver(settings).resolve("  Fresh Mart Panjim ")

    assert calls["redirect"] == []
    assert calls["find"][0]["query"] == "Fresh Mart Panjim"
    assert calls["find"][0]["bias"] is None


def test_redirect_failure_falls_back_to_raw_url(settings, places):
    calls, state = places
    state["redirect"] = requests.ConnectionError("dns")

    resolver.GeoResolver(settings).resolve("https://maps.app.goo.gl/xyz")

    assert calls["find"][0]["query"] == "https://maps.app.goo.gl/xyz"


def test_ambiguous_search_fails_without_picking(settings, places):
    calls, state = places
    state["candidates"] = [{"place_id": "a"}, {"place_id": "b"}]

    with pytest.raises(ResolutionError) as excinfo:
        resolver.GeoResolver(settings).resolve("Fresh Mart")

    assert excinfo.value.code == ResolutionError.AMBIGUOUS
    assert "Ambiguous" in excinfo.value.reason
    assert calls["details"] == []


def test_zero_candidates_is_not_found(settings, places):
    _, state = places
    state["candidates"] = []

    with pytest.raises(ResolutionError) as excinfo:
        resolver.GeoResolver(settings).resolve("Fresh Mart")

    assert excinfo.value.code == ResolutionError.NOT_FOUND
    assert "not found" in excinfo.value.reason


def test_empty_reference_is_rejected(settings, places):
    with pytest.raises(ResolutionError) as excinfo:
        resolver.GeoResolver(settings).resolve("   ")

    assert excinfo.value.code == ResolutionError.INPUT_MISSING


def test_missing_credentials(settings, places):
    calls, _ = places
    no_key = dataclasses.replace(settings, google_places_api_key="")

    with pytest.raises(ResolutionError) as excinfo:
        resolver.GeoResolver(no_key).resolve("Fresh Mart")

    assert excinfo.value.code == ResolutionError.CREDENTIALS_MISSING
    assert "GOOGLE_PLACES_API_KEY" in excinfo.value.reason
    assert calls["find"] == []


def test_provider_error_and_timeout_have_distinct_reasons(settings, monkeypatch):
    def denied(*args, **kwargs):
        raise resolver.google_places.GooglePlacesError("bad key", status="REQUEST_DENIED")

    def slow(*args, **kwargs):
        raise requests.Timeout("read timeout")

    monkeypatch.setattr(resolver.google_places, "find_place", denied)
    with pytest.raises(ResolutionError) as denied_exc:
        resolver.GeoResolver(settings).resolve("Fresh Mart")

    monkeypatch.setattr(resolver.google_places, "find_place", slow)
    with pytest.raises(ResolutionError) as slow_exc:
        resolver.GeoResolver(settings).resolve("Fresh Mart")

    assert denied_exc.value.code == ResolutionError.PROVIDER_ERROR
    assert "REQUEST_DENIED" in denied_exc.value.reason
    assert slow_exc.value.code == ResolutionError.TIMEOUT
    assert "timed out" in slow_exc.value.reason
