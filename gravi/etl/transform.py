"""Utilities for transforming Maps links and Google Places responses into pipeline values."""

import logging
import math
import re
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Tuple
from urllib.parse import unquote_plus

from gravi.models import PlaceIdentity, ResolvedPlace, Review

logger = logging.getLogger(__name__)

_PLACE_SEGMENT_REGEX = re.compile(r"/place/([^/@?]+)")
_COORDINATE_REGEX = re.compile(r"@(-?\d+\.\d+),(-?\d+\.\d+)")


def is_url(reference: str) -> bool:
    return reference.lower().startswith(("http://", "https://"))


def extract_search_query(url: str) -> Optional[str]:
    """Human readable place name from a `/place/<name>` path segment."""
    match = _PLACE_SEGMENT_REGEX.search(url)
    if not match:
        return None
    query = unquote_plus(match.group(1)).strip()
    return query or None


def extract_coordinates(url: str) -> Optional[Tuple[float, float]]:
    match = _COORDINATE_REGEX.search(url)
    if not match:
        return None
    return float(match.group(1)), float(match.group(2))


def location_bias(coordinates: Optional[Tuple[float, float]], radius: int) -> Optional[str]:
    if coordinates is None:
        return None
    lat, lng = coordinates
    return f"circle:{radius}@{lat},{lng}"


def _safe_float(value: Any) -> Optional[float]:
    try:
        if value is None:
            return None
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def _safe_int(value: Any) -> int:
    try:
        return max(int(value), 0)
    except (TypeError, ValueError, OverflowError):
        return 0


def to_place_identity(place_id: str, fallback_name: str, details: Dict[str, Any]) -> PlaceIdentity:
    location = (details.get("geometry") or {}).get("location") or {}
    return PlaceIdentity(
        place_id=place_id,
        name=details.get("name") or fallback_name,
        lat=_safe_float(location.get("lat")),
        lng=_safe_float(location.get("lng")),
        address=details.get("formatted_address") or "Unknown",
        review_count=_safe_int(details.get("user_ratings_total")),
    )


def to_resolved_place(
    place_id: str,
    fallback_name: str,
    details: Dict[str, Any],
    *,
    resolved_url: Optional[str] = None,
    search_query: Optional[str] = None,
) -> ResolvedPlace:
    photos = details.get("photos") or []
    photo_references = tuple(
        photo["photo_reference"] for photo in photos if isinstance(photo, dict) and photo.get("photo_reference")
    )
    raw_reviews = tuple(review for review in details.get("reviews") or [] if isinstance(review, dict))
    return ResolvedPlace(
        identity=to_place_identity(place_id, fallback_name, details),
        category_hints=tuple(str(t) for t in details.get("types") or []),
        average_rating=_safe_float(details.get("rating")) or 0.0,
        photo_references=photo_references,
        raw_reviews=raw_reviews,
        business_status=details.get("business_status"),
        resolved_url=resolved_url,
        search_query=search_query,
    )


def _review_date(timestamp: Any) -> str:
    seconds = _safe_float(timestamp)
    if seconds is None:
        return ""
    try:
        return datetime.fromtimestamp(seconds, tz=timezone.utc).date().isoformat()
    except (OverflowError, OSError, ValueError):
        logger.warning("Ignoring out-of-range review timestamp: %s", timestamp)
        return ""


def to_review(raw: Dict[str, Any]) -> Review:
    rating = _safe_float(raw.get("rating")) or 0
    return Review(
        author=raw.get("author_name") or "Anonymous",
        rating=min(max(rating, 0), 5),
        text=raw.get("text") or "",
        date=_review_date(raw.get("time")),
    )


def select_recent_reviews(raw_reviews: Iterable[Dict[str, Any]], limit: int) -> List[Review]:
    """Newest first, at most `limit`, normalized to Review."""
    ordered = sorted(raw_reviews, key=lambda r: _safe_float(r.get("time")) or 0, reverse=True)
    return [to_review(raw) for raw in ordered[:limit]]
