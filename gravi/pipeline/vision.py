"""Vision-model classification of store photos."""

import logging
from typing import Any, Callable, Dict, Optional, Sequence

import requests

from gravi.core.config import Settings, get_settings
from gravi.core.errors import ClassificationError
from gravi.etl.model_output import (
    ModelOutputError,
    extract_json_object,
    to_bulk_image_result,
    to_classification_result,
)
from gravi.models import (
    ALLOWED_STORE_TYPES,
    UNCLASSIFIED,
    BulkImageResult,
    ClassificationResult,
    EvidenceImage,
)
from gravi.vendors import chat_models

logger = logging.getLogger(__name__)

PLACE_MAX_TOKENS = 1200
PLACE_TEMPERATURE = 0.05

_TAXONOMY_LINE = ", ".join(sorted(ALLOWED_STORE_TYPES))

PLACE_PROMPT_TEMPLATE = """You are GRAVI Core Validation Engine v2.1, a retail intelligence AI for FMCG stores.
You are analyzing {image_count} image(s) of the retail store: "{place_name}" (Google types: {category_hints}).

HARD RULES, NEVER VIOLATE:
1. Do NOT hallucinate. Only report what is clearly, unambiguously visible in the image(s).
2. Do NOT guess if you cannot clearly see a label, logo, or sign.
3. If uncertainty exceeds 20%, set store_type to "{unclassified}" and confidence_score to a value below 75.

DYNAMIC BRAND DETECTION FROM SHELVES:
Inspect every shelf, refrigerator, and rack pictured. Read the packaging labels, logos, and product names.
Categorize ANY identifiable FMCG brand you see (local snacks, regional detergents, unknown drinks included).
Group them under logical categories such as "Snacks", "Beverages", "Dairy", "Personal Care", "Staples", "Home Care".
Do not return empty arrays for categories you invent. If you don't see any brands, leave the object empty {{}}.

STORE TYPE:
You MUST use exactly one label from this closed taxonomy (or "{unclassified}"):
{taxonomy}

STORE TYPE DECISION WEIGHTS:
- Image structural cues (50%): counter layout -> Kirana; 3+ aisles -> Supermarket; bulk pallets -> Wholesale.
- Brand diversity count (30%): 10+ distinct brands -> Supermarket or larger; 2-5 -> Kirana/Mini.
- Google type metadata (20%): use as a secondary hint only.

Return ONLY valid JSON, no markdown:
{{
  "store_name_from_image": "",
  "store_type": "",
  "confidence_score": 0,
  "detected_brands": {{
    "CategoryName": ["Brand1", "Brand2"]
  }},
  "shelf_density_score": 0,
  "reasoning": ""
}}"""

BULK_PROMPT = """You are a retail analysis AI. Analyze this image of a retail store and return ONLY a JSON object exactly matching this schema without markdown formatting:
{
  "is_valid_grocery_store": boolean,
  "store_type": "supermarket_shelf" or "kirana_exterior" or "other",
  "store_type_confidence": integer between 0 and 100,
  "estimated_store_size": "Large" or "Medium" or "Small",
  "visible_brands": [string],
  "dominant_brand": string,
  "ad_materials_detected": [string],
  "category_detected": string,
  "shelf_density_estimate": "High Density" or "Sparse" or "Mixed",
  "out_of_stock_signals": "Yes" or "No" or "Unknown",
  "competitive_brand_presence": string,
  "reasoning": string
}"""


def build_place_prompt(image_count: int, place_name: str, category_hints: Sequence[str]) -> str:
    return PLACE_PROMPT_TEMPLATE.format(
        image_count=image_count,
        place_name=place_name,
        category_hints=", ".join(category_hints) or "unknown",
        unclassified=UNCLASSIFIED,
        taxonomy=_TAXONOMY_LINE,
    )


class VisionClassifier:
    """Sends evidence images to a vision model and validates what comes back.

    The model is not trusted to follow the prompt; every completion goes
    through `gravi.etl.model_output` before anything downstream sees it.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        session_id: str = "-",
        completion: Callable[..., str] = chat_models.chat_completion,
    ):
        self.settings = settings or get_settings()
        self.session_id = session_id
        self._completion = completion

    def classify(
        self,
        images: Sequence[EvidenceImage],
        place_name: str,
        category_hints: Sequence[str] = (),
    ) -> ClassificationResult:
        if not images:
            raise ClassificationError("No images supplied for classification", code=ClassificationError.NO_IMAGES)

        images = list(images)[: self.settings.max_images]
        prompt = build_place_prompt(len(images), place_name, category_hints)
        content = [{"type": "text", "text": prompt}, *chat_models.image_parts([img.data_url for img in images])]
        raw = self._complete(
            api_url=self.settings.llm_api_url,
            api_key=self.settings.llm_api_key,
            model=self.settings.vision_model,
            content=content,
            max_tokens=PLACE_MAX_TOKENS,
            temperature=PLACE_TEMPERATURE,
        )
        result = to_classification_result(self._parse(raw))
        logger.info(
            "[%s] Vision result: type=%s confidence=%s brands=%d",
            self.session_id,
            result.store_type,
            result.confidence,
            len(result.flat_brands),
        )
        return result

    def classify_image(self, image: EvidenceImage) -> BulkImageResult:
        """Single-image classification used by bulk folder analysis."""
        image_name = image.name or image.source or "unnamed"
        content = [{"type": "text", "text": BULK_PROMPT}, *chat_models.image_parts([image.data_url])]
        raw = self._complete(
            api_url=self.settings.bulk_llm_api_url,
            api_key=self.settings.bulk_llm_api_key,
            model=self.settings.bulk_vision_model,
            content=content,
        )
        return to_bulk_image_result(image_name, self._parse(raw))

    def _complete(self, **kwargs: Any) -> str:
        try:
            return self._completion(timeout=self.settings.http_timeout, **kwargs)
        except requests.Timeout as exc:
            raise ClassificationError("Vision model request timed out", code=ClassificationError.TIMEOUT) from exc
        except (chat_models.ChatModelError, requests.RequestException) as exc:
            raise ClassificationError(f"Vision LLM Error: {exc}", code=ClassificationError.PROVIDER_ERROR) from exc

    def _parse(self, raw: str) -> Dict[str, Any]:
        try:
            return extract_json_object(raw)
        except ModelOutputError as exc:
            logger.error("[%s] Unparseable vision output: %s", self.session_id, exc)
            raise ClassificationError(str(exc), code=ClassificationError.MALFORMED_OUTPUT) from exc
