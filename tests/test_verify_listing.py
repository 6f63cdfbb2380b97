import argparse
import json

import pytest

from gravi.core.config import ConfigError
from gravi.jobs import verify_listing
from gravi.models import FAILED, VERIFIED
from gravi.pipeline.orchestrator import VerificationOutcome


class FakeOrchestrator:
    outcome = None
    persist = None

    def __init__(self, settings, persist=None):
        FakeOrchestrator.persist = persist

    def run(self, listing_ref):
        return FakeOrchestrator.outcome


@pytest.fixture
def fake_pipeline(settings, monkeypatch):
    monkeypatch.setattr(verify_listing, "get_settings", lambda: settings)
    monkeypatch.setattr(verify_listing, "PipelineOrchestrator", FakeOrchestrator)
    FakeOrchestrator.persist = None
    return FakeOrchestrator


def test_failed_run_prints_reason_and_exits_1(fake_pipeline, capsys):
    fake_pipeline.outcome = VerificationOutcome(session_id="s-1", status=FAILED, reason="Ambiguous listing")

    code = verify_listing.run_verify_job("Fresh Mart", indent=None)

    assert code == 1
    assert json.loads(capsys.readouterr().out) == {
        "analysis_session_id": "s-1",
        "verification_status": FAILED,
        "reason": "Ambiguous listing",
    }
    assert fake_pipeline.persist is None


def test_verified_run_exits_0(fake_pipeline, capsys):
    fake_pipeline.outcome = VerificationOutcome(session_id="s-2", status=VERIFIED, record=None)

    assert verify_listing.run_verify_job("Fresh Mart") == 0


def test_persist_requires_database_url(fake_pipeline):
    with pytest.raises(ConfigError, match="DATABASE_URL"):
        verify_listing.run_verify_job("Fresh Mart", persist=True)


def test_persist_prepares_schema(settings, fake_pipeline, monkeypatch):
    import dataclasses

    calls = []
    monkeypatch.setattr(verify_listing, "get_settings", lambda: dataclasses.replace(settings, database_url="postgres://"))
    monkeypatch.setattr(verify_listing, "init_pool", lambda: calls.append("pool"))
    monkeypatch.setattr(verify_listing, "ensure_schema", lambda: calls.append("schema"))
    fake_pipeline.outcome = VerificationOutcome(session_id="s-3", status=FAILED, reason="x")

    verify_listing.run_verify_job("Fresh Mart", persist=True)

    assert calls == ["pool", "schema"]
    assert fake_pipeline.persist is verify_listing.save_analysis_record


def test_main_exit_codes(fake_pipeline):
    fake_pipeline.outcome = VerificationOutcome(session_id="s-4", status=FAILED, reason="x")

    with pytest.raises(SystemExit) as failed:
        verify_listing.main(["Fresh Mart"])
    with pytest.raises(SystemExit) as misconfigured:
        verify_listing.main(["Fresh Mart", "--persist"])

    assert failed.value.code == 1
    assert misconfigured.value.code == 2


def test_build_parser_defaults():
    parser = verify_listing.build_parser()
    args = parser.parse_args(["https://maps.app.goo.gl/xyz"])

    assert isinstance(parser, argparse.ArgumentParser)
    assert args.listing == "https://maps.app.goo.gl/xyz"
    assert args.persist is False
    assert args.indent == 2
