"""Single-listing verification pipeline.

    START -> RESOLVING -> COLLECTING_EVIDENCE -> CLASSIFYING (with SUMMARIZING)
          -> SCORING -> IDENTITY_RECHECK -> VERIFIED | FAILED

Transitions only move forward. Any terminal error moves the run straight to
FAILED with a reason; the session id created at START is kept on every
outcome.
"""

import logging
import uuid
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional

from gravi.core.config import Settings, get_settings
from gravi.core.errors import GraviError, IdentityLockViolation
from gravi.models import (
    FAILED,
    VERIFIED,
    AnalysisRecordV2,
    ClassificationResult,
    EvidenceBundle,
    PlaceIdentity,
    ReviewIntelligence,
    ScoreResult,
)
from gravi.pipeline.evidence import EvidenceCollector
from gravi.pipeline.resolver import GeoResolver
from gravi.pipeline.reviews import ReviewSummarizer
from gravi.pipeline.scoring import compute_authenticity_score
from gravi.pipeline.vision import VisionClassifier

logger = logging.getLogger(__name__)

IDENTITY_MISMATCH_REASON = "Identity lock mismatch detected, analysis aborted."


class PipelineState(str, Enum):
    START = "START"
    RESOLVING = "RESOLVING"
    COLLECTING_EVIDENCE = "COLLECTING_EVIDENCE"
    CLASSIFYING = "CLASSIFYING"
    SCORING = "SCORING"
    IDENTITY_RECHECK = "IDENTITY_RECHECK"
    VERIFIED = "VERIFIED"
    FAILED = "FAILED"


@dataclass(frozen=True)
class VerificationOutcome:
    session_id: str
    status: str
    record: Optional[AnalysisRecordV2] = None
    reason: Optional[str] = None
    failed_state: Optional[PipelineState] = None

    @property
    def verified(self) -> bool:
        return self.status == VERIFIED

    def to_response(self) -> Dict[str, Any]:
        if self.verified and self.record is not None:
            return {"success": True, "v2": True, "results": self.record.to_dict()}
        return {
            "analysis_session_id": self.session_id,
            "verification_status": FAILED,
            "reason": self.reason,
        }


def build_verified_record(
    session_id: str,
    identity: PlaceIdentity,
    evidence: EvidenceBundle,
    classification: ClassificationResult,
    review_intelligence: ReviewIntelligence,
    score: ScoreResult,
    average_rating: float,
) -> AnalysisRecordV2:
    """Assemble the v2 record; refuses evidence fetched for a different place_id."""
    if not identity.place_id or evidence.place_id != identity.place_id:
        raise IdentityLockViolation(
            IDENTITY_MISMATCH_REASON,
            details={"locked_place_id": identity.place_id, "evidence_place_id": evidence.place_id},
        )
    return AnalysisRecordV2(
        analysis_session_id=session_id,
        place_identity_lock=identity,
        store_type=classification.store_type,
        store_type_confidence=classification.confidence_label,
        store_name_from_image=classification.store_name_from_image,
        detected_brands=classification.detected_brands,
        review_intelligence=review_intelligence,
        average_rating=average_rating,
        recent_reviews=evidence.reviews,
        images_analyzed=len(evidence.images),
        shelf_density_score=classification.shelf_density_score,
        authenticity_score=score.authenticity_score,
        risk_flags=score.risk_flags,
    )


def _new_session_id() -> str:
    return str(uuid.uuid4())


class PipelineOrchestrator:
    """Runs the verification pipeline; the only component that declares a verdict.

    Collaborators are built per run from factories taking `(settings, session_id)`,
    so concurrent runs never share component state.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        *,
        resolver_factory: Callable[..., GeoResolver] = GeoResolver,
        collector_factory: Callable[..., EvidenceCollector] = EvidenceCollector,
        classifier_factory: Callable[..., VisionClassifier] = VisionClassifier,
        summarizer_factory: Callable[..., ReviewSummarizer] = ReviewSummarizer,
        persist: Optional[Callable[[AnalysisRecordV2], None]] = None,
        session_id_factory: Callable[[], str] = _new_session_id,
    ):
        self.settings = settings or get_settings()
        self.resolver_factory = resolver_factory
        self.collector_factory = collector_factory
        self.classifier_factory = classifier_factory
        self.summarizer_factory = summarizer_factory
        self.persist = persist
        self.session_id_factory = session_id_factory

    def run(self, listing_ref: str) -> VerificationOutcome:
        session_id = self.session_id_factory()
        state = PipelineState.START
        logger.info("[%s] Verification started for %s", session_id, listing_ref)

        try:
            state = PipelineState.RESOLVING
            place = self.resolver_factory(self.settings, session_id).resolve(listing_ref)
            identity = place.identity
            logger.info("[%s] Identity lock: %s", session_id, identity.to_dict())

            state = PipelineState.COLLECTING_EVIDENCE
            evidence = self.collector_factory(self.settings, session_id).collect(place)

            state = PipelineState.CLASSIFYING
            classifier = self.classifier_factory(self.settings, session_id)
            summarizer = self.summarizer_factory(self.settings, session_id)
            logger.info("[%s] Running vision classification and review summary in parallel", session_id)
            with ThreadPoolExecutor(max_workers=2) as executor:
                vision_future = executor.submit(
                    classifier.classify, evidence.images, identity.name, place.category_hints
                )
                summary_future = executor.submit(summarizer.summarize, evidence.reviews)
                review_intelligence = summary_future.result()
                classification = vision_future.result()

            state = PipelineState.SCORING
            score = compute_authenticity_score(
                place.category_hints,
                classification.flat_brands,
                classification.store_type,
                classification.confidence,
                len(evidence.images),
            )

            state = PipelineState.IDENTITY_RECHECK
            record = build_verified_record(
                session_id,
                identity,
                evidence,
                classification,
                review_intelligence,
                score,
                place.average_rating,
            )
        except IdentityLockViolation as exc:
            logger.critical("[%s] IDENTITY LOCK VIOLATION in %s: %s", session_id, state.value, exc.details)
            return self._failed(session_id, state, exc.reason)
        except GraviError as exc:
            logger.warning("[%s] %s failed (%s): %s", session_id, state.value, exc.code, exc.reason)
            return self._failed(session_id, state, exc.reason)
        except Exception as exc:  # noqa: BLE001
            logger.exception("[%s] Unexpected error in %s: %s", session_id, state.value, exc)
            return self._failed(session_id, state, str(exc) or "Unknown server error")

        logger.info(
            "[%s] Analysis complete. Score: %s | Type: %s | Status: %s",
            session_id,
            record.authenticity_score,
            record.store_type,
            VERIFIED,
        )
        self._persist(record)
        return VerificationOutcome(session_id=session_id, status=VERIFIED, record=record)

    def _failed(self, session_id: str, state: PipelineState, reason: str) -> VerificationOutcome:
        return VerificationOutcome(session_id=session_id, status=FAILED, reason=reason, failed_state=state)

    def _persist(self, record: AnalysisRecordV2) -> None:
        if self.persist is None:
            return
        try:
            self.persist(record)
        except Exception as exc:  # noqa: BLE001
            logger.error("[%s] Failed to persist analysis record: %s", record.analysis_session_id, exc)


def verify_listing(listing_ref: str, **kwargs: Any) -> VerificationOutcome:
    return PipelineOrchestrator(**kwargs).run(listing_ref)
