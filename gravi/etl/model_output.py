"""Validation of free-text model completions into pipeline values.

Model output is treated as an untrusted wire format: code fences are
stripped, the first balanced JSON object is extracted, every known field is
coerced into its closed schema with an explicit default, and unknown fields
are dropped.
"""

import json
import logging
import math
import re
from typing import Any, Dict, Iterable, List, Mapping, Optional

from gravi.models import (
    ALLOWED_STORE_TYPES,
    MAX_THEMES,
    SENTIMENTS,
    UNCLASSIFIED,
    BulkImageResult,
    ClassificationResult,
    ReviewIntelligence,
)

logger = logging.getLogger(__name__)

_FENCE_REGEX = re.compile(r"```(?:json)?", re.IGNORECASE)

BULK_STORE_TYPES = frozenset({"supermarket_shelf", "kirana_exterior", "other"})


class ModelOutputError(ValueError):
    """Raised when a completion contains no usable JSON object."""


def strip_code_fences(raw: str) -> str:
    return _FENCE_REGEX.sub("", raw).strip()


def _balanced_object_end(text: str, start: int) -> Optional[int]:
    depth = 0
    in_string = False
    escaped = False
    for index in range(start, len(text)):
        char = text[index]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return index
    return None


def extract_json_object(raw: Optional[str]) -> Dict[str, Any]:
    """Return the first balanced `{...}` substring that decodes to a JSON object."""
    if not raw or not raw.strip():
        raise ModelOutputError("Model returned an empty response.")

    text = strip_code_fences(raw)
    start = text.find("{")
    while start != -1:
        end = _balanced_object_end(text, start)
        if end is None:
            break
        try:
            parsed = json.loads(text[start : end + 1])
        except json.JSONDecodeError:
            parsed = None
        if isinstance(parsed, dict):
            return parsed
        start = text.find("{", start + 1)

    raise ModelOutputError(f"No JSON object found in model output: {text[:200]}")


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _to_number(value: Any) -> Optional[float]:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip().rstrip("%"))
        except ValueError:
            return None
    else:
        return None
    if not math.isfinite(number):
        return None
    return number


def normalize_confidence(value: Any) -> int:
    """0-1 fractions are scaled to percent; the result is always an int in [0, 100]."""
    number = _to_number(value)
    if number is None:
        return 0
    if number <= 1:
        number *= 100
    return min(max(_round_half_up(number), 0), 100)


def coerce_store_type(value: Any) -> str:
    if isinstance(value, str) and value.strip() in ALLOWED_STORE_TYPES:
        return value.strip()
    return UNCLASSIFIED


def _clean_strings(values: Iterable[Any]) -> List[str]:
    return [value.strip() for value in values if isinstance(value, str) and value.strip()]


def clean_brand_map(value: Any) -> Dict[str, List[str]]:
    """Keep only categories whose value is a non-empty list of brand names."""
    if not isinstance(value, Mapping):
        return {}
    brands: Dict[str, List[str]] = {}
    for category, names in value.items():
        if not isinstance(category, str) or not category.strip() or not isinstance(names, list):
            continue
        cleaned = _clean_strings(names)
        if cleaned:
            brands[category.strip()] = cleaned
    return brands


def _text(value: Any, default: str) -> str:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return default


def _string_list(value: Any) -> List[str]:
    if isinstance(value, list):
        return _clean_strings(value)
    if isinstance(value, str) and value.strip():
        return [value.strip()]
    return []


def to_classification_result(payload: Mapping[str, Any]) -> ClassificationResult:
    shelf_density = _to_number(payload.get("shelf_density_score"))
    return ClassificationResult(
        store_type=coerce_store_type(payload.get("store_type")),
        confidence=normalize_confidence(payload.get("confidence_score", payload.get("confidence"))),
        detected_brands=clean_brand_map(payload.get("detected_brands")),
        shelf_density_score=shelf_density if shelf_density is not None else 0.0,
        store_name_from_image=_text(payload.get("store_name_from_image"), "Unknown"),
        reasoning=_text(payload.get("reasoning"), ""),
    )


def to_review_intelligence(payload: Mapping[str, Any]) -> ReviewIntelligence:
    sentiment = payload.get("sentiment")
    if not isinstance(sentiment, str) or sentiment.strip().lower() not in SENTIMENTS:
        sentiment = "unknown"
    else:
        sentiment = sentiment.strip().lower()
    themes = _string_list(payload.get("common_themes"))[:MAX_THEMES]
    return ReviewIntelligence(sentiment=sentiment, common_themes=tuple(themes))


def to_bulk_image_result(image_name: str, payload: Mapping[str, Any]) -> BulkImageResult:
    is_valid = payload.get("is_valid_grocery_store")
    store_type = payload.get("store_type")
    confidence = payload.get("store_type_confidence")
    return BulkImageResult(
        image_name=image_name,
        is_valid_grocery_store=is_valid if isinstance(is_valid, bool) else True,
        store_type=store_type if store_type in BULK_STORE_TYPES else "other",
        store_type_confidence=normalize_confidence(confidence) if confidence is not None else 80,
        estimated_store_size=_text(payload.get("estimated_store_size"), "Unknown"),
        visible_brands=_string_list(payload.get("visible_brands")),
        dominant_brand=_text(payload.get("dominant_brand"), "Unknown"),
        ad_materials_detected=_string_list(payload.get("ad_materials_detected")),
        category_detected=_text(payload.get("category_detected"), "Unknown"),
        shelf_density_estimate=_text(payload.get("shelf_density_estimate"), "Unknown"),
        out_of_stock_signals=_text(payload.get("out_of_stock_signals"), "None"),
        competitive_brand_presence=_text(payload.get("competitive_brand_presence"), "Unknown"),
        reasoning=_text(payload.get("reasoning"), "Completed by Vision AI"),
    )
