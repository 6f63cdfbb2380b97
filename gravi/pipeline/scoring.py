"""Deterministic authenticity scoring.

Four independently capped components are summed and clamped to [0, 100]:

    category match   30  provider types look like retail and/or >= 4 brands
    brand presence   30  by number of detected brands
    store type       25  closed-taxonomy label, full marks at >= 75% confidence
    image coverage   15  by number of images analyzed

The weights and thresholds have no calibration data behind them; they are
kept as constants so they can be tuned in one place.
"""

from typing import Iterable, List, Sequence

from gravi.core.errors import ScoringError
from gravi.models import ALLOWED_STORE_TYPES, HIGH_CONFIDENCE_THRESHOLD, UNCLASSIFIED, ScoreResult

RETAIL_PLACE_TYPES = frozenset(
    {
        "grocery_or_supermarket",
        "convenience_store",
        "store",
        "supermarket",
        "department_store",
        "food_store",
        "indian_grocery_store",
        "shopping_mall",
    }
)

CATEGORY_FULL = 30
CATEGORY_RETAIL_ONLY = 18
CATEGORY_BRANDS_ONLY = 12

BRAND_HIGH = 30
BRAND_MEDIUM = 20
BRAND_LOW = 10
BRAND_MINIMAL = 5

STORE_TYPE_CONFIDENT = 25
STORE_TYPE_UNCERTAIN = 12

IMAGES_FULL = 15
IMAGES_PARTIAL = 8

MANY_BRANDS = 8
SEVERAL_BRANDS = 4
FEW_BRANDS = 2
FULL_IMAGE_COVERAGE = 3

FLAG_UNCLASSIFIABLE = "Store type unclassifiable"
FLAG_NO_PHOTOS = "No photos available"
FLAG_LOW_BRANDS = "Low brand visibility"
FLAG_LOW_CONFIDENCE = "Low AI confidence"


def is_retail_like(category_hints: Iterable[str]) -> bool:
    return any(hint in RETAIL_PLACE_TYPES for hint in category_hints)


def _validate(brands: Sequence[str], store_type: str, confidence: int, image_count: int) -> None:
    if isinstance(confidence, bool) or not isinstance(confidence, int) or not 0 <= confidence <= 100:
        raise ScoringError(f"confidence must be an int in [0, 100], got {confidence!r}")
    if isinstance(image_count, bool) or not isinstance(image_count, int) or image_count < 0:
        raise ScoringError(f"image_count must be a non-negative int, got {image_count!r}")
    if not isinstance(store_type, str):
        raise ScoringError(f"store_type must be a string, got {store_type!r}")
    if isinstance(brands, str) or any(not isinstance(brand, str) for brand in brands):
        raise ScoringError("brands must be a sequence of strings")


def compute_authenticity_score(
    category_hints: Iterable[str],
    brands: Sequence[str],
    store_type: str,
    confidence: int,
    image_count: int,
) -> ScoreResult:
    """Score one classified store. Same inputs always give the same score and flag order."""
    _validate(brands, store_type, confidence, image_count)
    risk_flags: List[str] = []
    retail_like = is_retail_like(category_hints)
    brand_count = len(brands)

    if retail_like and brand_count >= SEVERAL_BRANDS:
        category_score = CATEGORY_FULL
    elif retail_like:
        category_score = CATEGORY_RETAIL_ONLY
    elif brand_count >= SEVERAL_BRANDS:
        category_score = CATEGORY_BRANDS_ONLY
    else:
        category_score = 0

    if brand_count >= MANY_BRANDS:
        brand_score = BRAND_HIGH
    elif brand_count >= SEVERAL_BRANDS:
        brand_score = BRAND_MEDIUM
    elif brand_count >= FEW_BRANDS:
        brand_score = BRAND_LOW
    else:
        brand_score = BRAND_MINIMAL

    if store_type != UNCLASSIFIED and store_type in ALLOWED_STORE_TYPES:
        type_score = STORE_TYPE_CONFIDENT if confidence >= HIGH_CONFIDENCE_THRESHOLD else STORE_TYPE_UNCERTAIN
    else:
        type_score = 0
        risk_flags.append(FLAG_UNCLASSIFIABLE)

    if image_count >= FULL_IMAGE_COVERAGE:
        image_score = IMAGES_FULL
    elif image_count >= 1:
        image_score = IMAGES_PARTIAL
    else:
        image_score = 0
        risk_flags.append(FLAG_NO_PHOTOS)

    if brand_count < FEW_BRANDS:
        risk_flags.append(FLAG_LOW_BRANDS)
    if confidence < HIGH_CONFIDENCE_THRESHOLD:
        risk_flags.append(FLAG_LOW_CONFIDENCE)

    total = category_score + brand_score + type_score + image_score
    return ScoreResult(
        authenticity_score=min(max(total, 0), 100),
        risk_flags=tuple(risk_flags),
        components={
            "category_match": category_score,
            "brand_presence": brand_score,
            "store_type_quality": type_score,
            "image_coverage": image_score,
        },
    )
