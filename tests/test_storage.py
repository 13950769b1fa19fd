from datetime import date

import pytest

from config import StorageConfig
from ledger_audit.errors import MutationFailed
from ledger_audit.findings import FixKind
from ledger_audit.fixes import FixPlanner
from ledger_audit import CompanySnapshot
from storage.service import FixQueueSink, StorageService

from conftest import tax_ledger


@pytest.fixture
def storage(tmp_path):
    return StorageService(base_dir=tmp_path / "runs", storage_config=StorageConfig())


@pytest.fixture
def saved_run(storage, engine, company_profile):
    snapshot = CompanySnapshot(company_profile=company_profile, ledgers=(tax_ledger("Output CGST"),))
    report = engine.run_audit(snapshot, date(2024, 3, 31))
    run_id = storage.generate_run_id()
    metadata = storage.create_metadata(run_id, catalog_name=report.catalog_name)
    storage.save_run(run_id, report, metadata)
    return run_id, report


def test_save_and_load_run(storage, saved_run):
    run_id, report = saved_run

    loaded = storage.load_run(run_id)

    assert loaded["metadata"]["run_id"] == run_id
    assert loaded["metadata"]["source"] == "snapshot"
    assert loaded["report"]["overall_score"] == report.overall_score
    assert len(loaded["issues"]) == len(report.issues)
    assert loaded["match_results"] is None
    assert loaded["fix_queue"] == []
    assert storage.get_run_exists(run_id)


def test_stored_issues_rebuild_exactly(storage, saved_run):
    run_id, report = saved_run

    assert storage.load_issues(run_id) == report.issues


def test_list_runs_newest_first(storage, saved_run):
    run_id, _ = saved_run

    runs = storage.list_runs()

    assert [run["run_id"] for run in runs] == [run_id]


def test_unknown_run(storage):
    assert not storage.get_run_exists("run_missing")
    assert not storage.get_run_exists("../etc")
    with pytest.raises(ValueError):
        storage.load_run("run_missing")


def test_fix_queue_sink_appends_actions(storage, saved_run):
    run_id, report = saved_run
    planner = FixPlanner(FixQueueSink(storage, run_id))

    batch = planner.apply_many(report.auto_fixable_issues())

    queue = storage.load_fix_queue(run_id)
    assert batch.success
    assert len(queue) == len(report.auto_fixable_issues())
    create = [entry for entry in queue if entry["subject"] == "Output IGST"][0]
    assert create["action"] == FixKind.CREATE_SUBJECT.value
    assert create["attributes"]["parent"] == "Duties & Taxes"


def test_fix_queue_sink_rejects_unknown_run(storage):
    sink = FixQueueSink(storage, "run_missing")

    with pytest.raises(MutationFailed):
        sink.rename("GST", "Output GST")


def test_metadata_for_uploaded_file(storage, tmp_path):
    upload = tmp_path / "export.xlsx"
    upload.write_bytes(b"not really a workbook")

    metadata = storage.create_metadata("run_1", upload, "india-gst-tds")

    assert metadata["file_name"] == "export.xlsx"
    assert metadata["file_size"] == len(b"not really a workbook")
    assert metadata["file_hash"] == StorageService.calculate_file_hash(upload)
