"""Client utilities for the Google Places API."""

import logging
from typing import Any, Dict, Optional, Tuple

import requests

logger = logging.getLogger(__name__)
_SESSION = requests.Session()
_BASE_URL = "https://maps.googleapis.com/maps/api/place"

DEFAULT_TIMEOUT = 15
DETAIL_FIELDS = "name,formatted_address,geometry,types,rating,user_ratings_total,reviews,photos,business_status"
PHOTO_MAX_WIDTH = 800


class GooglePlacesError(RuntimeError):
    """Raised when the Places API returns a non-successful response."""

    def __init__(self, message: str, status: Optional[str] = None):
        super().__init__(message)
        self.status = status


def _checked_payload(response: requests.Response, operation: str) -> Dict[str, Any]:
    response.raise_for_status()
    payload = response.json()
    status = payload.get("status")
    if status not in {"OK", "ZERO_RESULTS"}:
        logger.error("%s failed: status=%s, error_message=%s", operation, status, payload.get("error_message"))
        raise GooglePlacesError(payload.get("error_message") or status, status=status)
    return payload


def find_place(
    query: str,
    api_key: str,
    location_bias: Optional[str] = None,
    timeout: float = DEFAULT_TIMEOUT,
) -> Dict[str, Any]:
    """Find-place-from-text; `location_bias` is a Places bias such as `circle:50@lat,lng`."""
    params = {
        "input": query,
        "inputtype": "textquery",
        "fields": "place_id,name",
        "key": api_key,
    }
    if location_bias:
        params["locationbias"] = location_bias
    response = _SESSION.get(f"{_BASE_URL}/findplacefromtext/json", params=params, timeout=timeout)
    return _checked_payload(response, "find_place")


def place_details(place_id: str, api_key: str, timeout: float = DEFAULT_TIMEOUT) -> Dict[str, Any]:
    params = {"place_id": place_id, "key": api_key, "fields": DETAIL_FIELDS}
    response = _SESSION.get(f"{_BASE_URL}/details/json", params=params, timeout=timeout)
    payload = _checked_payload(response, "place_details")
    if payload.get("status") != "OK":
        raise GooglePlacesError(f"Place details failed: {payload.get('status')}", status=payload.get("status"))
    return payload.get("result", {})


def place_photo(photo_reference: str, api_key: str, timeout: float = DEFAULT_TIMEOUT) -> Tuple[bytes, str]:
    """Download one place photo; returns the raw bytes and their content type."""
    params = {"maxwidth": PHOTO_MAX_WIDTH, "photo_reference": photo_reference, "key": api_key}
    response = _SESSION.get(f"{_BASE_URL}/photo", params=params, timeout=timeout)
    response.raise_for_status()
    content_type = response.headers.get("content-type", "image/jpeg").split(";")[0].strip()
    if not content_type.startswith("image/"):
        content_type = "image/jpeg"
    return response.content, content_type


def resolve_redirect(url: str, timeout: float = DEFAULT_TIMEOUT) -> str:
    """Follow a (short) Maps link and return the final URL."""
    response = _SESSION.head(url, allow_redirects=True, timeout=timeout)
    return response.url or url
