"""Client for OpenAI-compatible chat completion endpoints (Groq, Hugging Face router)."""

import logging
from typing import Any, Dict, List, Optional, Sequence

import requests

logger = logging.getLogger(__name__)
_SESSION = requests.Session()

DEFAULT_TIMEOUT = 15


class ChatModelError(RuntimeError):
    """Raised when the model endpoint fails or answers without a message."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


def image_parts(data_urls: Sequence[str]) -> List[Dict[str, Any]]:
    return [{"type": "image_url", "image_url": {"url": url}} for url in data_urls]


def chat_completion(
    *,
    api_url: str,
    api_key: str,
    model: str,
    content: Any,
    max_tokens: Optional[int] = None,
    temperature: Optional[float] = None,
    timeout: float = DEFAULT_TIMEOUT,
) -> str:
    """Send a single user message and return the assistant's text content.

    `content` is either a prompt string or a list of OpenAI-style content
    parts (text and image_url entries).
    """
    if not api_key:
        raise ChatModelError("Model API key is not configured.")

    payload: Dict[str, Any] = {
        "model": model,
        "messages": [{"role": "user", "content": content}],
        "stream": False,
    }
    if max_tokens is not None:
        payload["max_tokens"] = max_tokens
    if temperature is not None:
        payload["temperature"] = temperature

    headers = {"Authorization": f"Bearer {api_key}", "Content-Type": "application/json"}
    response = _SESSION.post(api_url, json=payload, headers=headers, timeout=timeout)
    if not (200 <= response.status_code < 300):
        logger.error("Model endpoint returned %s: %s", response.status_code, response.text[:500])
        raise ChatModelError(
            f"Model API error: {response.status_code} - {response.text[:200]}",
            status_code=response.status_code,
        )

    data = response.json()
    try:
        message = data["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError) as exc:
        raise ChatModelError(f"Model response missing message content: {str(data)[:200]}") from exc
    if not isinstance(message, str):
        raise ChatModelError("Model response content is not text.")
    return message
