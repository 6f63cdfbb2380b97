"""Collect photos and recent reviews for a resolved place."""

import base64
import logging
from typing import List, Optional

import requests

from gravi.core.config import Settings, get_settings
from gravi.core.errors import EvidenceError
from gravi.etl.transform import select_recent_reviews
from gravi.models import EvidenceBundle, EvidenceImage, ResolvedPlace
from gravi.vendors import google_places

logger = logging.getLogger(__name__)


def encode_image(content: bytes, media_type: str, source: Optional[str] = None, name: Optional[str] = None) -> EvidenceImage:
    return EvidenceImage(
        data=base64.b64encode(content).decode("ascii"),
        media_type=media_type or "image/jpeg",
        source=source,
        name=name,
    )


class EvidenceCollector:
    def __init__(self, settings: Optional[Settings] = None, session_id: str = "-"):
        self.settings = settings or get_settings()
        self.session_id = session_id

    def collect(self, place: ResolvedPlace) -> EvidenceBundle:
        """Download up to `max_images` photos (sequentially) and pick the newest reviews.

        A failed photo is skipped; the bundle is only rejected when no photo
        at all could be downloaded.
        """
        place_id = place.identity.place_id
        references = place.photo_references[: self.settings.max_images]
        logger.info("[%s] Fetching %d photos for %s", self.session_id, len(references), place_id)

        images: List[EvidenceImage] = []
        for reference in references:
            try:
                content, media_type = google_places.place_photo(
                    reference,
                    self.settings.google_places_api_key,
                    timeout=self.settings.http_timeout,
                )
            except requests.RequestException as exc:
                logger.warning("[%s] Skipping photo %s: %s", self.session_id, reference[:24], exc)
                continue
            if not content:
                logger.warning("[%s] Skipping empty photo %s", self.session_id, reference[:24])
                continue
            images.append(encode_image(content, media_type, source=reference))

        if not images:
            raise EvidenceError("No images could be downloaded for this listing.")

        reviews = select_recent_reviews(place.raw_reviews, self.settings.max_reviews)
        logger.info("[%s] Collected %d images and %d reviews", self.session_id, len(images), len(reviews))
        return EvidenceBundle(place_id=place_id, images=tuple(images), reviews=tuple(reviews))
