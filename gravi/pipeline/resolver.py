"""Resolve a Maps link or free-text query to exactly one Google Places listing."""

import logging
from typing import Optional

import requests

from gravi.core.config import ConfigError, Settings, get_settings, require
from gravi.core.errors import ResolutionError
from gravi.etl.transform import (
    extract_coordinates,
    extract_search_query,
    is_url,
    location_bias,
    to_resolved_place,
)
from gravi.models import ResolvedPlace
from gravi.vendors import google_places

logger = logging.getLogger(__name__)


class GeoResolver:
    """Turns a listing reference into one ResolvedPlace or raises ResolutionError.

    The search must return exactly one candidate; several candidates are an
    error even when the first one looks right.
    """

    def __init__(self, settings: Optional[Settings] = None, session_id: str = "-"):
        self.settings = settings or get_settings()
        self.session_id = session_id

    def resolve(self, listing_ref: str) -> ResolvedPlace:
        reference = (listing_ref or "").strip()
        if not reference:
            raise ResolutionError("mapsUrl is required", code=ResolutionError.INPUT_MISSING)

        try:
            api_key = require(self.settings, "google_places_api_key", "GOOGLE_PLACES_API_KEY")
        except ConfigError as exc:
            raise ResolutionError(str(exc), code=ResolutionError.CREDENTIALS_MISSING) from exc

        search_query, resolved_url, coordinates = reference, reference, None
        if is_url(reference):
            resolved_url = self._follow_redirect(reference)
            search_query = extract_search_query(resolved_url) or reference
            coordinates = extract_coordinates(resolved_url)
            if coordinates:
                logger.info("[%s] Coordinate constraint found: %s,%s", self.session_id, *coordinates)
        logger.info("[%s] Resolved search query: %s", self.session_id, search_query)

        bias = location_bias(coordinates, self.settings.location_bias_radius)
        candidates = self._call(
            "Google Places search",
            google_places.find_place,
            search_query,
            api_key,
            location_bias=bias,
            timeout=self.settings.http_timeout,
        ).get("candidates") or []

        if not candidates:
            raise ResolutionError(
                f"Place not found for query: {search_query}", code=ResolutionError.NOT_FOUND
            )
        if len(candidates) > 1:
            logger.warning("[%s] %d candidates returned for %s", self.session_id, len(candidates), search_query)
            raise ResolutionError(
                "Ambiguous listing: multiple place_ids returned, cannot uniquely identify store",
                code=ResolutionError.AMBIGUOUS,
                details={"candidates": len(candidates)},
            )

        candidate = candidates[0]
        place_id = candidate.get("place_id")
        if not place_id:
            raise ResolutionError("Place search returned a candidate without place_id", code=ResolutionError.PROVIDER_ERROR)
        logger.info("[%s] Unique place_id: %s | name: %s", self.session_id, place_id, candidate.get("name"))

        details = self._call(
            "Google Places details",
            google_places.place_details,
            place_id,
            api_key,
            timeout=self.settings.http_timeout,
        )
        return to_resolved_place(
            place_id,
            candidate.get("name") or search_query,
            details,
            resolved_url=resolved_url,
            search_query=search_query,
        )

    def _follow_redirect(self, url: str) -> str:
        try:
            return google_places.resolve_redirect(url, timeout=self.settings.http_timeout)
        except requests.RequestException as exc:
            logger.warning("[%s] Could not resolve redirect for %s: %s", self.session_id, url, exc)
            return url

    def _call(self, label, func, *args, **kwargs):
        try:
            return func(*args, **kwargs)
        except requests.Timeout as exc:
            raise ResolutionError(f"{label} timed out", code=ResolutionError.TIMEOUT) from exc
        except google_places.GooglePlacesError as exc:
            raise ResolutionError(
                f"{label} failed: {exc.status or exc}", code=ResolutionError.PROVIDER_ERROR
            ) from exc
        except requests.RequestException as exc:
            raise ResolutionError(f"{label} request failed: {exc}", code=ResolutionError.PROVIDER_ERROR) from exc
