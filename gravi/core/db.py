"""Database helpers for storing analysis records."""

import logging
from contextlib import contextmanager
from typing import Any, Dict, Optional, Sequence

from psycopg2 import extras, pool

from gravi.core.config import get_settings
from gravi.models import BULK_COMPLETED, BULK_PROCESSING, AnalysisRecord, BulkImageResult, parse_analysis_record

logger = logging.getLogger(__name__)

_connection_pool: Optional[pool.SimpleConnectionPool] = None


def init_pool(minconn: int = 1, maxconn: int = 5) -> pool.SimpleConnectionPool:
    """Initialise and return the shared connection pool."""
    global _connection_pool
    if _connection_pool is None:
        settings = get_settings()
        if not settings.database_url:
            raise RuntimeError("DATABASE_URL is required for database connections")
        _connection_pool = pool.SimpleConnectionPool(
            minconn,
            maxconn,
            dsn=settings.database_url,
            connect_timeout=10,
        )
        logger.info("Database connection pool initialised")
    return _connection_pool


@contextmanager
def get_connection():
    """Context manager yielding a pooled connection."""
    pg_pool = init_pool()
    conn = pg_pool.getconn()
    try:
        yield conn
    finally:
        pg_pool.putconn(conn)


CREATE_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS analysis_records (
    analysis_session_id UUID PRIMARY KEY,
    record_version TEXT NOT NULL CHECK (record_version IN ('v1', 'v2')),
    place_id TEXT,
    authenticity_score INTEGER,
    payload JSONB NOT NULL,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE TABLE IF NOT EXISTS bulk_analyses (
    id TEXT PRIMARY KEY,
    status TEXT NOT NULL,
    total_images INTEGER,
    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE TABLE IF NOT EXISTS bulk_image_results (
    bulk_analysis_id TEXT NOT NULL REFERENCES bulk_analyses (id),
    position INTEGER NOT NULL,
    image_name TEXT NOT NULL,
    is_valid_grocery_store BOOLEAN NOT NULL,
    store_type TEXT,
    store_type_confidence INTEGER,
    estimated_store_size TEXT,
    visible_brands JSONB,
    dominant_brand TEXT,
    ad_materials_detected JSONB,
    category_detected TEXT,
    shelf_density_estimate TEXT,
    out_of_stock_signals TEXT,
    competitive_brand_presence TEXT,
    reasoning TEXT,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    PRIMARY KEY (bulk_analysis_id, position)
);
"""

# Records are write-once: a second insert for the same session id is ignored.
_INSERT_RECORD = """
INSERT INTO analysis_records (
    analysis_session_id,
    record_version,
    place_id,
    authenticity_score,
    payload
) VALUES (
    %(analysis_session_id)s,
    %(record_version)s,
    %(place_id)s,
    %(authenticity_score)s,
    %(payload)s
)
ON CONFLICT (analysis_session_id) DO NOTHING;
"""

_SELECT_RECORD = """
SELECT record_version, payload FROM analysis_records WHERE analysis_session_id = %(analysis_session_id)s;
"""


def ensure_schema() -> None:
    with get_connection() as conn:
        with conn.cursor() as cur:
            cur.execute(CREATE_TABLE_SQL)
        conn.commit()


def _prepare_params(payload: Dict[str, Any]) -> Dict[str, Any]:
    lock = payload.get("place_identity_lock") or {}
    score = payload.get("authenticity_score")
    if score is None:
        score = (payload.get("validation_framework") or {}).get("overall_authenticity_score")
    return {
        "analysis_session_id": payload.get("analysis_session_id"),
        "record_version": payload.get("record_version"),
        "place_id": lock.get("place_id"),
        "authenticity_score": score,
        "payload": extras.Json(payload),
    }


def save_analysis_record(record: AnalysisRecord) -> None:
    """Persist a record keyed by its session id."""
    params = _prepare_params(record.to_dict())
    if not params["analysis_session_id"] or not params["record_version"]:
        raise ValueError("analysis_session_id and record_version are required to store a record")

    with get_connection() as conn:
        with conn.cursor() as cur:
            cur.execute(_INSERT_RECORD, params)
        conn.commit()
        logger.debug("Stored analysis record %s", params["analysis_session_id"])


def load_analysis_record(session_id: str) -> Optional[AnalysisRecord]:
    """Load a stored v1 or v2 record; the stored version column is authoritative."""
    with get_connection() as conn:
        with conn.cursor() as cur:
            cur.execute(_SELECT_RECORD, {"analysis_session_id": session_id})
            row = cur.fetchone()
    if row is None:
        return None
    record_version, payload = row
    payload = dict(payload)
    payload["record_version"] = record_version
    return parse_analysis_record(payload)


# ---------- Bulk folder runs ----------

_UPSERT_BULK_STATUS = """
INSERT INTO bulk_analyses (id, status, total_images)
VALUES (%(bulk_analysis_id)s, %(status)s, %(total_images)s)
ON CONFLICT (id) DO UPDATE SET
    status = EXCLUDED.status,
    total_images = COALESCE(EXCLUDED.total_images, bulk_analyses.total_images),
    updated_at = NOW();
"""

_INSERT_BULK_RESULT = """
INSERT INTO bulk_image_results (
    bulk_analysis_id,
    position,
    image_name,
    is_valid_grocery_store,
    store_type,
    store_type_confidence,
    estimated_store_size,
    visible_brands,
    dominant_brand,
    ad_materials_detected,
    category_detected,
    shelf_density_estimate,
    out_of_stock_signals,
    competitive_brand_presence,
    reasoning
) VALUES (
    %(bulk_analysis_id)s,
    %(position)s,
    %(image_name)s,
    %(is_valid_grocery_store)s,
    %(store_type)s,
    %(store_type_confidence)s,
    %(estimated_store_size)s,
    %(visible_brands)s,
    %(dominant_brand)s,
    %(ad_materials_detected)s,
    %(category_detected)s,
    %(shelf_density_estimate)s,
    %(out_of_stock_signals)s,
    %(competitive_brand_presence)s,
    %(reasoning)s
)
ON CONFLICT (bulk_analysis_id, position) DO NOTHING;
"""


def _bulk_result_params(bulk_analysis_id: str, position: int, result: BulkImageResult) -> Dict[str, Any]:
    params = result.to_dict()
    params["bulk_analysis_id"] = bulk_analysis_id
    params["position"] = position
    params["visible_brands"] = extras.Json(params["visible_brands"])
    params["ad_materials_detected"] = extras.Json(params["ad_materials_detected"])
    return params


def mark_bulk_processing(bulk_analysis_id: str, total_images: int) -> None:
    """Record that a bulk run started with `total_images` listed images."""
    if not bulk_analysis_id:
        raise ValueError("bulk_analysis_id is required")
    with get_connection() as conn:
        with conn.cursor() as cur:
            cur.execute(
                _UPSERT_BULK_STATUS,
                {"bulk_analysis_id": bulk_analysis_id, "status": BULK_PROCESSING, "total_images": total_images},
            )
        conn.commit()


def save_bulk_results(bulk_analysis_id: str, results: Sequence[BulkImageResult], status: str = BULK_COMPLETED) -> None:
    """Store one row per image result, in run order, and set the final run status."""
    if not bulk_analysis_id:
        raise ValueError("bulk_analysis_id is required")
    with get_connection() as conn:
        with conn.cursor() as cur:
            cur.execute(
                _UPSERT_BULK_STATUS,
                {"bulk_analysis_id": bulk_analysis_id, "status": status, "total_images": None},
            )
            for position, result in enumerate(results):
                cur.execute(_INSERT_BULK_RESULT, _bulk_result_params(bulk_analysis_id, position, result))
        conn.commit()
        logger.info("Stored %d bulk results for %s (%s)", len(results), bulk_analysis_id, status)
