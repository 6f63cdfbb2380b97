import sys
from pathlib import Path

import pytest

# Ensure the `gravi` package is importable when running pytest from the repository root.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from gravi.core.config import Settings  # noqa: E402


@pytest.fixture
def settings():
    return Settings(
        google_places_api_key="places-key",
        llm_api_key="llm-key",
        bulk_llm_api_key="hf-key",
        google_drive_api_key="drive-key",
        http_timeout=15,
    )
