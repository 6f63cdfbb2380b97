"""Core data models shared by the store verification pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

UNCLASSIFIED = "UNCLASSIFIED"

ALLOWED_STORE_TYPES = frozenset(
    {
        "Kirana Store",
        "Mini Supermarket",
        "Supermarket",
        "Hypermarket",
        "Departmental Store",
        "Convenience Store",
        "Wholesale Grocery",
        "Cash & Carry",
        "Organic Store",
        "Dairy Booth",
        "FMCG Distributor Outlet",
        "Medical + Grocery Combo",
        "Provisional Store",
        "General Store",
        "Specialty Food Store",
        "Paan + Convenience Hybrid",
        "Bakery + Grocery Hybrid",
        "Rural Retail Outlet",
    }
)

SENTIMENTS = frozenset({"positive", "mixed", "negative", "unknown"})
HIGH_CONFIDENCE_THRESHOLD = 75
MAX_THEMES = 6

VERIFIED = "VERIFIED"
FAILED = "FAILED"
RECORD_V1 = "v1"
RECORD_V2 = "v2"

BULK_PROCESSING = "processing"
BULK_COMPLETED = "completed"
BULK_CANCELLED = "cancelled"


@dataclass(frozen=True, slots=True)
class PlaceIdentity:
    """The single real-world place a pipeline run is locked to."""

    place_id: str
    name: str
    lat: Optional[float] = None
    lng: Optional[float] = None
    address: str = "Unknown"
    review_count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "place_id": self.place_id,
            "name": self.name,
            "lat": self.lat,
            "lng": self.lng,
            "address": self.address,
            "review_count": self.review_count,
        }


@dataclass(frozen=True, slots=True)
class ResolvedPlace:
    """A PlaceIdentity together with the details fetched while resolving it."""

    identity: PlaceIdentity
    category_hints: Tuple[str, ...] = ()
    average_rating: float = 0.0
    photo_references: Tuple[str, ...] = ()
    raw_reviews: Tuple[Mapping[str, Any], ...] = field(default=(), repr=False)
    business_status: Optional[str] = None
    resolved_url: Optional[str] = None
    search_query: Optional[str] = None


@dataclass(frozen=True, slots=True)
class Review:
    author: str = "Anonymous"
    rating: float = 0
    text: str = ""
    date: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {"author": self.author, "rating": self.rating, "text": self.text, "date": self.date}

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "Review":
        return cls(
            author=payload.get("author") or "Anonymous",
            rating=payload.get("rating") or 0,
            text=payload.get("text") or "",
            date=payload.get("date") or "",
        )


@dataclass(frozen=True, slots=True)
class EvidenceImage:
    data: str = field(repr=False)
    media_type: str = "image/jpeg"
    source: Optional[str] = None
    name: Optional[str] = None

    @property
    def data_url(self) -> str:
        return f"data:{self.media_type};base64,{self.data}"


@dataclass(frozen=True, slots=True)
class EvidenceBundle:
    """Images and reviews collected for one place; `place_id` is the id used to fetch them."""

    place_id: str
    images: Tuple[EvidenceImage, ...] = ()
    reviews: Tuple[Review, ...] = ()


@dataclass(slots=True)
class ClassificationResult:
    store_type: str = UNCLASSIFIED
    confidence: int = 0
    detected_brands: Dict[str, List[str]] = field(default_factory=dict)
    shelf_density_score: float = 0.0
    store_name_from_image: str = "Unknown"
    reasoning: str = ""

    @property
    def flat_brands(self) -> List[str]:
        return [brand for brands in self.detected_brands.values() for brand in brands]

    @property
    def confidence_label(self) -> str:
        return "HIGH" if self.confidence >= HIGH_CONFIDENCE_THRESHOLD else "LOW"


@dataclass(frozen=True, slots=True)
class ReviewIntelligence:
    sentiment: str = "unknown"
    common_themes: Tuple[str, ...] = ()

    @classmethod
    def unknown(cls) -> "ReviewIntelligence":
        return cls()

    def to_dict(self) -> Dict[str, Any]:
        return {"sentiment": self.sentiment, "common_themes": list(self.common_themes)}


@dataclass(frozen=True, slots=True)
class ScoreResult:
    authenticity_score: int
    risk_flags: Tuple[str, ...] = ()
    components: Mapping[str, int] = field(default_factory=dict, compare=False)


@dataclass(slots=True)
class BulkImageResult:
    """Per-image record produced by bulk folder analysis."""

    image_name: str
    is_valid_grocery_store: bool = True
    store_type: str = "other"
    store_type_confidence: int = 0
    estimated_store_size: str = "Unknown"
    visible_brands: List[str] = field(default_factory=list)
    dominant_brand: str = "Unknown"
    ad_materials_detected: List[str] = field(default_factory=list)
    category_detected: str = "Unknown"
    shelf_density_estimate: str = "Unknown"
    out_of_stock_signals: str = "None"
    competitive_brand_presence: str = "Unknown"
    reasoning: str = "Completed by Vision AI"

    @classmethod
    def failure(cls, image_name: str, message: str) -> "BulkImageResult":
        return cls(
            image_name=image_name,
            is_valid_grocery_store=False,
            reasoning=message or "Classification failed",
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "image_name": self.image_name,
            "is_valid_grocery_store": self.is_valid_grocery_store,
            "store_type": self.store_type,
            "store_type_confidence": self.store_type_confidence,
            "estimated_store_size": self.estimated_store_size,
            "visible_brands": list(self.visible_brands),
            "dominant_brand": self.dominant_brand,
            "ad_materials_detected": list(self.ad_materials_detected),
            "category_detected": self.category_detected,
            "shelf_density_estimate": self.shelf_density_estimate,
            "out_of_stock_signals": self.out_of_stock_signals,
            "competitive_brand_presence": self.competitive_brand_presence,
            "reasoning": self.reasoning,
        }


# ---------- Analysis records ----------


def _freeze_brands(brands: Mapping[str, Any]) -> Mapping[str, Tuple[str, ...]]:
    return MappingProxyType({category: tuple(names) for category, names in brands.items()})


@dataclass(frozen=True, slots=True)
class AnalysisRecordV2:
    """Write-once result of a VERIFIED pipeline run."""

    analysis_session_id: str
    place_identity_lock: PlaceIdentity
    store_type: str
    store_type_confidence: str
    store_name_from_image: str
    detected_brands: Mapping[str, Tuple[str, ...]]
    review_intelligence: ReviewIntelligence
    average_rating: float
    recent_reviews: Tuple[Review, ...]
    images_analyzed: int
    shelf_density_score: float
    authenticity_score: int
    risk_flags: Tuple[str, ...]
    verification_status: str = VERIFIED
    record_version: str = RECORD_V2

    def __post_init__(self) -> None:
        if not isinstance(self.detected_brands, MappingProxyType):
            object.__setattr__(self, "detected_brands", _freeze_brands(self.detected_brands))

    @property
    def total_reviews(self) -> int:
        return self.place_identity_lock.review_count

    def to_dict(self) -> Dict[str, Any]:
        return {
            "record_version": self.record_version,
            "analysis_session_id": self.analysis_session_id,
            "verification_status": self.verification_status,
            "place_identity_lock": self.place_identity_lock.to_dict(),
            "store_type": self.store_type,
            "store_type_confidence": self.store_type_confidence,
            "store_name_from_image": self.store_name_from_image,
            "detected_brands": {category: list(names) for category, names in self.detected_brands.items()},
            "review_intelligence": self.review_intelligence.to_dict(),
            "ratings_data": {"average_rating": self.average_rating, "total_reviews": self.total_reviews},
            "recent_reviews": [review.to_dict() for review in self.recent_reviews],
            "images_analyzed": self.images_analyzed,
            "shelf_density_score": self.shelf_density_score,
            "authenticity_score": self.authenticity_score,
            "risk_flags": list(self.risk_flags),
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "AnalysisRecordV2":
        lock = payload.get("place_identity_lock") or {}
        review_intel = payload.get("review_intelligence") or {}
        ratings = payload.get("ratings_data") or {}
        return cls(
            analysis_session_id=str(payload["analysis_session_id"]),
            place_identity_lock=PlaceIdentity(
                place_id=str(lock["place_id"]),
                name=lock.get("name") or "",
                lat=lock.get("lat"),
                lng=lock.get("lng"),
                address=lock.get("address") or "Unknown",
                review_count=int(lock.get("review_count") or ratings.get("total_reviews") or 0),
            ),
            store_type=payload.get("store_type") or UNCLASSIFIED,
            store_type_confidence=payload.get("store_type_confidence") or "LOW",
            store_name_from_image=payload.get("store_name_from_image") or "Unknown",
            detected_brands=payload.get("detected_brands") or {},
            review_intelligence=ReviewIntelligence(
                sentiment=review_intel.get("sentiment") or "unknown",
                common_themes=tuple(review_intel.get("common_themes") or ()),
            ),
            average_rating=float(ratings.get("average_rating") or 0),
            recent_reviews=tuple(Review.from_dict(review) for review in payload.get("recent_reviews") or ()),
            images_analyzed=int(payload.get("images_analyzed") or 0),
            shelf_density_score=float(payload.get("shelf_density_score") or 0),
            authenticity_score=int(payload.get("authenticity_score") or 0),
            risk_flags=tuple(payload.get("risk_flags") or ()),
            verification_status=payload.get("verification_status") or VERIFIED,
        )


@dataclass(frozen=True, slots=True)
class AnalysisRecordV1:
    """Legacy store-centric record; kept for reading historical results only."""

    analysis_session_id: str
    store_intelligence: Mapping[str, Any]
    fmcg_analysis: Mapping[str, Any]
    validation_framework: Mapping[str, Any]
    review_summary: Mapping[str, Any]
    ratings_data: Mapping[str, Any] = field(default_factory=dict)
    recent_reviews: Tuple[Review, ...] = ()
    record_version: str = RECORD_V1

    @property
    def authenticity_score(self) -> int:
        return int(self.validation_framework.get("overall_authenticity_score") or 0)

    @property
    def verdict(self) -> Optional[str]:
        return self.validation_framework.get("verdict")

    @property
    def detected_brands(self) -> List[str]:
        return list(self.fmcg_analysis.get("detected_brands") or [])

    def to_dict(self) -> Dict[str, Any]:
        return {
            "record_version": self.record_version,
            "analysis_session_id": self.analysis_session_id,
            "store_intelligence": dict(self.store_intelligence),
            "fmcg_analysis": dict(self.fmcg_analysis),
            "validation_framework": dict(self.validation_framework),
            "review_summary": dict(self.review_summary),
            "ratings_data": dict(self.ratings_data),
            "recent_reviews": [review.to_dict() for review in self.recent_reviews],
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "AnalysisRecordV1":
        return cls(
            analysis_session_id=str(payload["analysis_session_id"]),
            store_intelligence=MappingProxyType(dict(payload.get("store_intelligence") or {})),
            fmcg_analysis=MappingProxyType(dict(payload.get("fmcg_analysis") or {})),
            validation_framework=MappingProxyType(dict(payload.get("validation_framework") or {})),
            review_summary=MappingProxyType(dict(payload.get("review_summary") or {})),
            ratings_data=MappingProxyType(dict(payload.get("ratings_data") or {})),
            recent_reviews=tuple(Review.from_dict(review) for review in payload.get("recent_reviews") or ()),
        )


AnalysisRecord = Union[AnalysisRecordV1, AnalysisRecordV2]

_RECORD_TYPES = {RECORD_V1: AnalysisRecordV1, RECORD_V2: AnalysisRecordV2}


def parse_analysis_record(payload: Mapping[str, Any]) -> AnalysisRecord:
    """Rebuild a stored record, dispatching strictly on `record_version`."""
    version = payload.get("record_version")
    if version is None:
        raise ValueError("record_version is required to read an analysis record")
    record_type = _RECORD_TYPES.get(version)
    if record_type is None:
        raise ValueError(f"Unsupported analysis record version: {version!r}")
    return record_type.from_dict(payload)
