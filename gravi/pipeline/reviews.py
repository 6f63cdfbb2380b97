"""Review sentiment and theme summarization."""

import logging
from typing import Callable, Optional, Sequence

import requests

from gravi.core.config import Settings, get_settings
from gravi.core.errors import SummarizationError
from gravi.etl.model_output import ModelOutputError, extract_json_object, to_review_intelligence
from gravi.models import MAX_THEMES, Review, ReviewIntelligence
from gravi.vendors import chat_models

logger = logging.getLogger(__name__)

SUMMARY_MAX_TOKENS = 200
SUMMARY_TEMPERATURE = 0.1

SUMMARY_PROMPT_TEMPLATE = """You are a retail analytics AI. Analyze the following {count} customer reviews.
STRICT RULES:
1. Summarize ONLY from the provided reviews. Do NOT fabricate.
2. "sentiment": must be exactly one of: "positive", "mixed", or "negative".
3. "common_themes": array of up to {max_themes} short keyword phrases (e.g. "fresh produce", "helpful staff", "long queues").

Reviews:
{reviews}

Return ONLY:
{{ "sentiment": "", "common_themes": [] }}"""


def build_summary_prompt(reviews: Sequence[Review]) -> str:
    lines = "\n\n".join(
        f"Review {index} (Rating: {review.rating}/5): {review.text}" for index, review in enumerate(reviews, 1)
    )
    return SUMMARY_PROMPT_TEMPLATE.format(count=len(reviews), max_themes=MAX_THEMES, reviews=lines)


class ReviewSummarizer:
    """Never raises: any failure degrades to an unknown sentiment with no themes."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        session_id: str = "-",
        completion: Callable[..., str] = chat_models.chat_completion,
    ):
        self.settings = settings or get_settings()
        self.session_id = session_id
        self._completion = completion

    def summarize(self, reviews: Sequence[Review]) -> ReviewIntelligence:
        if not reviews:
            return ReviewIntelligence.unknown()
        try:
            return self._summarize(reviews)
        except SummarizationError as exc:
            logger.warning("[%s] Review summary unavailable: %s", self.session_id, exc)
        except Exception as exc:  # noqa: BLE001
            logger.exception("[%s] Unexpected review summary failure: %s", self.session_id, exc)
        return ReviewIntelligence.unknown()

    def _summarize(self, reviews: Sequence[Review]) -> ReviewIntelligence:
        try:
            raw = self._completion(
                api_url=self.settings.llm_api_url,
                api_key=self.settings.llm_api_key,
                model=self.settings.summary_model,
                content=build_summary_prompt(reviews),
                max_tokens=SUMMARY_MAX_TOKENS,
                temperature=SUMMARY_TEMPERATURE,
                timeout=self.settings.http_timeout,
            )
            payload = extract_json_object(raw)
        except (chat_models.ChatModelError, ModelOutputError, requests.RequestException) as exc:
            raise SummarizationError(str(exc)) from exc
        return to_review_intelligence(payload)
