"""Batch classification of pre-identified store images."""

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from gravi.core.config import Settings, get_settings, require
from gravi.models import BULK_CANCELLED, BULK_COMPLETED, BulkImageResult
from gravi.pipeline.evidence import encode_image
from gravi.pipeline.vision import VisionClassifier
from gravi.vendors import google_drive

logger = logging.getLogger(__name__)

@dataclass
class BulkRunResult:
    total_processed: int
    results: List[BulkImageResult] = field(default_factory=list)
    cancelled: bool = False

    @property
    def status(self) -> str:
        return BULK_CANCELLED if self.cancelled else BULK_COMPLETED

    def to_response(self) -> Dict[str, Any]:
        return {
            "success": True,
            "total_processed": self.total_processed,
            "results": [result.to_dict() for result in self.results],
        }


def item_name(item: Any) -> str:
    if isinstance(item, Mapping):
        return item.get("name") or item.get("id") or "unnamed"
    return getattr(item, "name", None) or getattr(item, "source", None) or "unnamed"


class BulkRunner:
    """Bounded-concurrency batch scheduler around a per-item classify callable.

    Items in a batch run concurrently; the next batch starts `batch_delay`
    seconds after the previous one finished. A failing item becomes a
    placeholder record, so the output always has one entry per attempted
    item, in input order. `cancel_event` is checked after each cool-down,
    right before a batch starts.
    """

    def __init__(
        self,
        classify: Callable[[Any], BulkImageResult],
        batch_size: int = 3,
        batch_delay: float = 2.0,
        cancel_event: Optional[threading.Event] = None,
    ):
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        if batch_delay < 0:
            raise ValueError("batch_delay must not be negative")
        self.classify = classify
        self.batch_size = batch_size
        self.batch_delay = batch_delay
        self.cancel_event = cancel_event

    def run(self, items: Sequence[Any]) -> BulkRunResult:
        results: List[BulkImageResult] = []
        total_batches = (len(items) + self.batch_size - 1) // self.batch_size
        cancelled = False

        with ThreadPoolExecutor(max_workers=self.batch_size) as executor:
            for batch_index, start in enumerate(range(0, len(items), self.batch_size), 1):
                if batch_index > 1 and self.batch_delay:
                    time.sleep(self.batch_delay)
                if self.cancel_event is not None and self.cancel_event.is_set():
                    logger.info("Bulk run cancelled before batch %d of %d", batch_index, total_batches)
                    cancelled = True
                    break

                batch = items[start : start + self.batch_size]
                logger.info("Processing batch %d of %d (%d items)", batch_index, total_batches, len(batch))
                futures = [executor.submit(self._classify_safe, item) for item in batch]
                results.extend(future.result() for future in futures)

        return BulkRunResult(total_processed=len(results), results=results, cancelled=cancelled)

    def _classify_safe(self, item: Any) -> BulkImageResult:
        name = item_name(item)
        try:
            return self.classify(item)
        except Exception as exc:  # noqa: BLE001
            logger.error("Error processing item %s: %s", name, exc)
            return BulkImageResult.failure(name, str(exc) or exc.__class__.__name__)


def drive_file_classifier(
    classifier: VisionClassifier, api_key: str, timeout: float
) -> Callable[[Mapping[str, Any]], BulkImageResult]:
    """Per-item callable: download one Drive file, then classify it."""

    def classify_file(entry: Mapping[str, Any]) -> BulkImageResult:
        content, media_type = google_drive.download_file(entry["id"], api_key, timeout=timeout)
        image = encode_image(content, media_type, source=entry["id"], name=item_name(entry))
        return classifier.classify_image(image)

    return classify_file


def _notify(hook: Optional[Callable[..., None]], label: str, *args: Any) -> None:
    if hook is None:
        return
    try:
        hook(*args)
    except Exception as exc:  # noqa: BLE001
        logger.error("Bulk %s hook failed: %s", label, exc)


def analyze_drive_folder(
    drive_url: str,
    settings: Optional[Settings] = None,
    cancel_event: Optional[threading.Event] = None,
    on_start: Optional[Callable[[int], None]] = None,
    on_finish: Optional[Callable[[BulkRunResult], None]] = None,
) -> BulkRunResult:
    """List the images of a shared Drive folder, then download and classify them in batches.

    `on_start` receives the number of listed images before classification
    begins; `on_finish` receives the final result. Hook failures are logged
    and never change the result.
    """
    folder_id = google_drive.extract_folder_id(drive_url)
    if not folder_id:
        raise ValueError("Invalid Google Drive Folder URL")

    settings = settings or get_settings()
    api_key = require(settings, "google_drive_api_key", "GOOGLE_DRIVE_API_KEY")
    require(settings, "bulk_llm_api_key", "HF_TOKEN")

    entries = google_drive.list_folder_images(folder_id, api_key, timeout=settings.http_timeout)
    logger.info("Fetched %d images from folder %s", len(entries), folder_id)
    _notify(on_start, "start", len(entries))

    classifier = VisionClassifier(settings, session_id=f"bulk-{folder_id}")
    runner = BulkRunner(
        drive_file_classifier(classifier, api_key, settings.http_timeout),
        batch_size=settings.bulk_batch_size,
        batch_delay=settings.bulk_batch_delay,
        cancel_event=cancel_event,
    )
    result = runner.run(entries)
    _notify(on_finish, "finish", result)
    return result
