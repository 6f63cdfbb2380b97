import threading

import pytest

from gravi.core.config import ConfigError
from gravi.models import BulkImageResult, EvidenceImage
from gravi.pipeline import bulk


def _items(count):
    return [EvidenceImage(data="AAA", source=f"id-{i}", name=f"img-{i}.jpg") for i in range(count)]


def _classify(item):
    if item.name in {"img-1.jpg", "img-4.jpg"}:
        raise RuntimeError(f"model rejected {item.name}")
    return BulkImageResult(image_name=item.name, store_type="supermarket_shelf", store_type_confidence=90)


def test_run_returns_one_record_per_item_in_order(monkeypatch):
    sleeps = []
    monkeypatch.setattr(bulk.time, "sleep", sleeps.append)

    result = bulk.BulkRunner(_classify, batch_size=3, batch_delay=2.0).run(_items(7))

    assert result.total_processed == 7
    assert [r.image_name for r in result.results] == [f"img-{i}.jpg" for i in range(7)]
    failed = [r for r in result.results if not r.is_valid_grocery_store]
    assert [r.image_name for r in failed] == ["img-1.jpg", "img-4.jpg"]
    assert failed[0].reasoning == "model rejected img-1.jpg"
    assert failed[0].store_type == "other"
    assert sleeps == [2.0, 2.0]
    assert result.cancelled is False


def test_single_batch_does_not_sleep(monkeypatch):
    sleeps = []
    monkeypatch.setattr(bulk.time, "sleep", sleeps.append)

    bulk.BulkRunner(_classify, batch_size=3).run(_items(3))

    assert sleeps == []


def test_cancellation_stops_before_next_batch(monkeypatch):
    monkeypatch.setattr(bulk.time, "sleep", lambda seconds: None)
    cancel = threading.Event()

    def classify_and_cancel(item):
        cancel.set()
        return BulkImageResult(image_name=item.name)

    result = bulk.BulkRunner(classify_and_cancel, batch_size=2, cancel_event=cancel).run(_items(5))

    assert result.cancelled is True
    assert result.total_processed == 2


def test_cancellation_during_cool_down_skips_next_batch(monkeypatch):
    cancel = threading.Event()
    monkeypatch.setattr(bulk.time, "sleep", lambda seconds: cancel.set())
    classified = []

    def classify(item):
        classified.append(item.name)
        return BulkImageResult(image_name=item.name)

    result = bulk.BulkRunner(classify, batch_size=2, batch_delay=1.0, cancel_event=cancel).run(_items(4))

    assert result.cancelled is True
    assert result.status == "cancelled"
    assert classified == ["img-0.jpg", "img-1.jpg"]


def test_empty_input():
    result = bulk.BulkRunner(_classify).run([])

    assert result.total_processed == 0
    assert result.to_response() == {"success": True, "total_processed": 0, "results": []}


@pytest.mark.parametrize("kwargs", [{"batch_size": 0}, {"batch_delay": -1}])
def test_runner_rejects_invalid_configuration(kwargs):
    with pytest.raises(ValueError):
        bulk.BulkRunner(_classify, **kwargs)


def test_analyze_drive_folder_rejects_invalid_url(settings):
    with pytest.raises(ValueError, match="Invalid Google Drive Folder URL"):
        bulk.analyze_drive_folder("https://example.com/not-a-folder", settings)


def test_analyze_drive_folder_requires_bulk_token(settings):
    import dataclasses

    no_token = dataclasses.replace(settings, bulk_llm_api_key="")

    with pytest.raises(ConfigError, match="HF_TOKEN"):
        bulk.analyze_drive_folder("https://drive.google.com/drive/folders/abc123", no_token)


def _fake_drive(monkeypatch, failing_ids=("f2",)):
    monkeypatch.setattr(bulk.time, "sleep", lambda seconds: None)
    monkeypatch.setattr(
        bulk.google_drive,
        "list_folder_images",
        lambda folder_id, api_key, timeout=None: [
            {"id": "f1", "name": "a.jpg"},
            {"id": "f2", "name": "b.jpg"},
            {"id": "f3", "name": "c.jpg"},
        ],
    )

    def fake_download(file_id, api_key, timeout=None):
        if file_id in failing_ids:
            raise bulk.google_drive.GoogleDriveError(f"Drive download failed for {file_id} with status 404")
        return b"bytes", "image/jpeg"

    monkeypatch.setattr(bulk.google_drive, "download_file", fake_download)
    monkeypatch.setattr(
        bulk.VisionClassifier,
        "classify_image",
        lambda self, image: BulkImageResult(image_name=image.name, store_type="kirana_exterior"),
    )


def test_analyze_drive_folder_keeps_a_record_for_failed_downloads(settings, monkeypatch):
    _fake_drive(monkeypatch)

    result = bulk.analyze_drive_folder("https://drive.google.com/drive/folders/abc123", settings)

    assert result.total_processed == 3
    assert [r.image_name for r in result.results] == ["a.jpg", "b.jpg", "c.jpg"]
    assert result.results[0].store_type == "kirana_exterior"
    assert result.results[1].is_valid_grocery_store is False
    assert "404" in result.results[1].reasoning
    assert result.results[2].is_valid_grocery_store is True


def test_analyze_drive_folder_reports_progress_hooks(settings, monkeypatch):
    _fake_drive(monkeypatch, failing_ids=())
    started, finished = [], []

    result = bulk.analyze_drive_folder(
        "https://drive.google.com/drive/folders/abc123",
        settings,
        on_start=started.append,
        on_finish=finished.append,
    )

    assert started == [3]
    assert finished == [result]
    assert result.status == "completed"


def test_analyze_drive_folder_survives_failing_hooks(settings, monkeypatch):
    _fake_drive(monkeypatch, failing_ids=())

    def broken(*args):
        raise RuntimeError("database unavailable")

    result = bulk.analyze_drive_folder(
        "https://drive.google.com/drive/folders/abc123", settings, on_start=broken, on_finish=broken
    )

    assert result.total_processed == 3
