"""HTTP entrypoint for single-listing verification and bulk folder analysis."""

from __future__ import annotations

import logging
import os
import uuid
from typing import Any, Dict, Optional

import requests
from flask import Flask, jsonify, request

from gravi.core.config import ConfigError, get_settings
from gravi.core import db
from gravi.models import FAILED
from gravi.pipeline.bulk import analyze_drive_folder
from gravi.pipeline.orchestrator import PipelineOrchestrator
from gravi.vendors.google_drive import GoogleDriveError

# ---------- Logging ----------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s - %(message)s",
)
logger = logging.getLogger(__name__)

# ---------- App ----------
app = Flask(__name__)


def _record_store() -> Optional[Any]:
    if not get_settings().database_url:
        return None
    return db.save_analysis_record


# ---------- Routes ----------


@app.get("/")
def root() -> Any:
    return "ok", 200


@app.get("/healthz")
def healthcheck() -> Any:
    """Lightweight health endpoint; reads settings only, never touches the database."""
    settings = get_settings()
    return (
        jsonify(
            {
                "status": "ok",
                "worker_port_config": settings.worker_port,
                "persistence": bool(settings.database_url),
                "revision": os.getenv("K_REVISION", "unknown"),
            }
        ),
        200,
    )


@app.post("/analyze-maps-url")
def analyze_maps_url() -> Any:
    """Verify one listing. Required JSON field: mapsUrl."""
    payload: Dict[str, Any] = request.get_json(silent=True) or {}
    maps_url = str(payload.get("mapsUrl") or "").strip()

    orchestrator = PipelineOrchestrator(get_settings(), persist=_record_store())
    if not maps_url:
        outcome = orchestrator.run("")
        return jsonify(outcome.to_response()), 400

    outcome = orchestrator.run(maps_url)
    return jsonify(outcome.to_response()), 200


@app.post("/analyze-drive-folder")
def analyze_drive_folder_route() -> Any:
    """Classify every image of a shared Drive folder.

    Required JSON field: driveUrl. Optional: bulkAnalysisId, which stores the
    run status and one row per image when a database is configured.
    """
    payload: Dict[str, Any] = request.get_json(silent=True) or {}
    drive_url = str(payload.get("driveUrl") or "").strip()
    if not drive_url:
        return jsonify({"error": "driveUrl is required"}), 400
    bulk_analysis_id = str(payload.get("bulkAnalysisId") or "").strip()

    settings = get_settings()
    hooks: Dict[str, Any] = {}
    if bulk_analysis_id and settings.database_url:
        hooks = {
            "on_start": lambda total: db.mark_bulk_processing(bulk_analysis_id, total),
            "on_finish": lambda result: db.save_bulk_results(bulk_analysis_id, result.results, result.status),
        }
    elif bulk_analysis_id:
        logger.warning("bulkAnalysisId %s ignored: DATABASE_URL is not set", bulk_analysis_id)

    try:
        result = analyze_drive_folder(drive_url, settings, **hooks)
    except ValueError as exc:
        return jsonify({"error": str(exc)}), 400
    except ConfigError as exc:
        logger.error("Bulk analysis misconfigured: %s", exc)
        return jsonify({"error": str(exc)}), 500
    except (GoogleDriveError, requests.RequestException) as exc:
        logger.exception("Bulk analysis failed for %s: %s", drive_url, exc)
        return jsonify({"error": str(exc)}), 500

    return jsonify(result.to_response()), 200


def _missing_analysis(session_id: str, reason: str, status_code: int) -> Any:
    return jsonify({"analysis_session_id": session_id, "verification_status": FAILED, "reason": reason}), status_code


@app.get("/analyses/<session_id>")
def get_analysis(session_id: str) -> Any:
    """Return a stored v1 or v2 record with its explicit record_version."""
    if not get_settings().database_url:
        return jsonify({"error": "persistence is not configured"}), 503
    try:
        uuid.UUID(session_id)
    except ValueError:
        return _missing_analysis(session_id, "invalid analysis_session_id", 400)

    try:
        record = db.load_analysis_record(session_id)
    except ValueError as exc:
        logger.error("Stored record %s is unreadable: %s", session_id, exc)
        return jsonify({"error": str(exc)}), 500

    if record is None:
        return _missing_analysis(session_id, "not found", 404)
    return jsonify(record.to_dict()), 200


# ---------- Internals ----------


def main() -> None:
    env_port = os.getenv("PORT")
    port = int(env_port or get_settings().worker_port)
    if get_settings().database_url:
        db.ensure_schema()
    logger.info("[BOOT] Binding on 0.0.0.0:%d", port)
    app.run(host="0.0.0.0", port=port)


if __name__ == "__main__":
    main()
