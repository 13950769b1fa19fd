"""
Flask views for the Ledger Audit application (JSON API).
"""
from datetime import date
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional
import logging

from flask import Blueprint, request, jsonify, current_app
from werkzeug.utils import secure_filename

from ledger_audit import (
    AuditEngine,
    ComplianceReconciler,
    CompanyProfile,
    CompanySnapshot,
    DateRange,
    ExcelSnapshotProvider,
    FixPlanner,
    LedgerSnapshot,
    StockItemSnapshot,
    TransactionRecord,
    default_catalog,
)
from ledger_audit.errors import DataUnavailable, InvalidRange, NotFixable
from ledger_audit.metrics import calculate_reconciliation_kpis
from storage.service import FixQueueSink, StorageService
from config import config

logger = logging.getLogger(__name__)
bp = Blueprint('main', __name__)

AGING_SIDES = ("receivables", "payables")


def get_storage_service() -> StorageService:
    """Get storage service rooted at the app's upload folder."""
    return StorageService(base_dir=current_app.config['UPLOAD_FOLDER'], storage_config=config.storage)


def get_cache():
    from app import cache
    return cache


def _report_cache_key(run_id: str) -> str:
    return f"report:{run_id}"


# ==================== Request parsing ====================

def _parse_date(value: Any, field_name: str) -> Optional[date]:
    if value in (None, ""):
        return None
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except ValueError:
        raise ValueError(f"'{field_name}' must be an ISO date (YYYY-MM-DD), got {value!r}")


def _parse_decimal(value: Any, field_name: str, default: Optional[Decimal] = None) -> Optional[Decimal]:
    if value in (None, ""):
        return default
    try:
        return Decimal(str(value))
    except InvalidOperation:
        raise ValueError(f"'{field_name}' must be a number, got {value!r}")


def _parse_flag(value: Any) -> Optional[bool]:
    if value is None:
        return None
    if isinstance(value, str):
        return value.strip().lower() in ("yes", "true", "1", "applicable")
    return bool(value)


def _require_json() -> Dict[str, Any]:
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        raise ValueError("Request body must be a JSON object")
    return payload


def _rows(rows: Any, field_name: str) -> List[Mapping[str, Any]]:
    if rows is None:
        return []
    if not isinstance(rows, list):
        raise ValueError(f"'{field_name}' must be a list of objects")
    for position, row in enumerate(rows):
        if not isinstance(row, dict):
            raise ValueError(f"{field_name}[{position}] must be an object, got {row!r}")
    return rows


def _require_as_of(payload: Mapping[str, Any]) -> date:
    as_of = _parse_date(payload.get("as_of"), "as_of")
    if as_of is None:
        raise InvalidRange("'as_of' date is required")
    return as_of


def _parse_period(payload: Mapping[str, Any]) -> Optional[DateRange]:
    period = payload.get("period")
    if not period:
        return None
    if not isinstance(period, dict):
        raise ValueError("'period' must be an object with 'start' and 'end'")
    return DateRange(_parse_date(period.get("start"), "period.start"), _parse_date(period.get("end"), "period.end"))


def parse_records(rows: Optional[List[Mapping[str, Any]]], field_name: str) -> List[TransactionRecord]:
    """Transaction records from JSON rows; amounts as strings or numbers."""
    records = []
    for position, row in enumerate(_rows(rows, field_name)):
        label = f"{field_name}[{position}]"
        records.append(TransactionRecord(
            date=_parse_date(row.get("date"), f"{label}.date"),
            external_reference=str(row.get("external_reference") or ""),
            counterparty_id=str(row.get("counterparty_id") or ""),
            amount=_parse_decimal(row.get("amount"), f"{label}.amount", Decimal("0")),
            instrument_id=row.get("instrument_id"),
            category=row.get("category"),
            record_id=row.get("record_id"),
            narration=row.get("narration") or "",
            cleared_date=_parse_date(row.get("cleared_date"), f"{label}.cleared_date"),
        ))
    return records


def parse_ledgers(rows: Optional[List[Mapping[str, Any]]]) -> List[LedgerSnapshot]:
    ledgers = []
    for position, row in enumerate(_rows(rows, "ledgers")):
        if not row.get("name"):
            raise ValueError(f"ledgers[{position}] has no name")
        ledgers.append(LedgerSnapshot(
            name=row["name"],
            parent_group=row.get("parent_group") or "",
            opening_balance=_parse_decimal(row.get("opening_balance"), "opening_balance", Decimal("0")),
            closing_balance=_parse_decimal(row.get("closing_balance"), "closing_balance", Decimal("0")),
            gstin=row.get("gstin"),
            gst_registration_type=row.get("gst_registration_type"),
            pan=row.get("pan"),
            tds_deductee_type=row.get("tds_deductee_type"),
            state=row.get("state"),
            gst_applicable=_parse_flag(row.get("gst_applicable")),
            tds_applicable=_parse_flag(row.get("tds_applicable")),
        ))
    return ledgers


def parse_stock_items(rows: Optional[List[Mapping[str, Any]]]) -> List[StockItemSnapshot]:
    items = []
    for position, row in enumerate(_rows(rows, "stock_items")):
        if not row.get("name"):
            raise ValueError(f"stock_items[{position}] has no name")
        items.append(StockItemSnapshot(
            name=row["name"],
            classification_code=row.get("classification_code"),
            tax_rate=_parse_decimal(row.get("tax_rate"), "tax_rate"),
            unit_of_measure=row.get("unit_of_measure"),
        ))
    return items


def parse_snapshot(payload: Mapping[str, Any]) -> CompanySnapshot:
    company = payload.get("company") or {}
    if not isinstance(company, dict) or not company.get("name"):
        raise ValueError("'company.name' is required")
    return CompanySnapshot(
        company_profile=CompanyProfile(
            name=company["name"],
            gstin=company.get("gstin"),
            pan=company.get("pan"),
            tan=company.get("tan"),
            state=company.get("state"),
        ),
        ledgers=tuple(parse_ledgers(payload.get("ledgers"))),
        stock_items=tuple(parse_stock_items(payload.get("stock_items"))),
        transactions=tuple(parse_records(payload.get("transactions"), "transactions")),
    )


def truncate_report(report: Dict[str, Any], display_limit: int) -> Dict[str, Any]:
    """Copy of a stored report with affected subjects cut for display; counts untouched."""
    categories = []
    for category in report.get("categories", []):
        issues = [
            dict(issue, affected_subjects=list(issue.get("affected_subjects", []))[:display_limit])
            for issue in category.get("issues", [])
        ]
        categories.append(dict(category, issues=issues))
    return dict(report, categories=categories)


# ==================== Error handling ====================

@bp.errorhandler(InvalidRange)
@bp.errorhandler(ValueError)
def handle_bad_request(e):
    logger.warning(f"[API] Bad request on {request.path}: {e}")
    return jsonify({"error": str(e)}), 400


@bp.errorhandler(NotFixable)
def handle_not_fixable(e):
    logger.warning(f"[API] {e}")
    return jsonify({"error": str(e), "issue_id": e.issue_id}), 422


@bp.errorhandler(DataUnavailable)
def handle_data_unavailable(e):
    logger.warning(f"[API] {e}")
    return jsonify({"error": str(e), "source": e.source}), 422


# ==================== Audit runs ====================

def execute_audit_run(snapshot, run_id: str, audit_date: Optional[date] = None) -> Dict[str, Any]:
    """
    Execute complete audit run.

    Args:
        snapshot: SnapshotProvider for the company
        run_id: Unique run identifier
        audit_date: Optional audit date (defaults to today)

    Returns:
        Dict with the report and, for workbooks with book and statement
        sheets, the bank statement match results
    """
    catalog = default_catalog()
    engine = AuditEngine(catalog, scoring=config.scoring, engine_config=config.engine)
    report = engine.run_audit(snapshot, audit_date)

    match_results = None
    recon_kpis = None
    if isinstance(snapshot, ExcelSnapshotProvider):
        try:
            book = snapshot.fetch_transactions()
            statement = snapshot.fetch_statement()
        except DataUnavailable as e:
            logger.info(f"[AUDIT] Run {run_id}: no bank statement reconciliation ({e})")
        else:
            reconciler = ComplianceReconciler(config.reconciliation, config.aging)
            match_results = reconciler.reconcile_bank_statement(book, statement).results_frame()
            recon_kpis = calculate_reconciliation_kpis(match_results)

    return {
        "report": report,
        "catalog": catalog,
        "match_results": match_results,
        "recon_kpis": recon_kpis,
    }


@bp.route('/audit', methods=['POST'])
def audit():
    """Run an audit on an uploaded workbook or a JSON snapshot."""
    storage = get_storage_service()
    run_id = storage.generate_run_id()
    file_path = None

    if 'file' in request.files:
        file = request.files['file']
        if file.filename == '':
            raise ValueError("No file selected")
        if not file.filename.endswith('.xlsx'):
            raise ValueError("Please upload an Excel (.xlsx) file")

        run_dir = storage.create_run_dir(run_id)
        file_path = run_dir / secure_filename(file.filename)
        file.save(str(file_path))
        snapshot = ExcelSnapshotProvider(file_path, config.workbook)
        audit_date = _parse_date(request.form.get('audit_date'), "audit_date")
    else:
        payload = _require_json()
        snapshot = parse_snapshot(payload)
        audit_date = _parse_date(payload.get("audit_date"), "audit_date")

    results = execute_audit_run(snapshot, run_id, audit_date)
    report = results["report"]

    metadata = storage.create_metadata(run_id, file_path, results["catalog"].name)
    metadata.update({
        "company_name": report.company_name,
        "audit_date": report.audit_date.isoformat(),
        "overall_score": report.overall_score,
        "total_issues": len(report.issues),
        "degraded_categories": [c.value for c in report.degraded_categories],
    })
    if results["recon_kpis"] is not None:
        metadata["reconciliation"] = results["recon_kpis"]

    storage.save_run(run_id, report, metadata, results["match_results"], file_path)
    get_cache().set(_report_cache_key(run_id), report.to_dict())

    logger.info(f"[API] Audit run {run_id} complete for '{report.company_name}'")
    body = {"run_id": run_id}
    body.update(report.to_dict(config.engine.display_limit))
    if results["recon_kpis"] is not None:
        body["reconciliation"] = results["recon_kpis"]
    return jsonify(body), 201


@bp.route('/runs')
def list_runs():
    limit = request.args.get('limit', default=10, type=int)
    return jsonify({"runs": get_storage_service().list_runs(limit=limit)})


def _load_report(run_id: str) -> Optional[Dict[str, Any]]:
    cache = get_cache()
    report = cache.get(_report_cache_key(run_id))
    if report is not None:
        logger.debug(f"[CACHE] Hit for run {run_id}")
        return report

    storage = get_storage_service()
    if not storage.get_run_exists(run_id):
        return None
    report = storage.load_report(run_id)
    cache.set(_report_cache_key(run_id), report)
    return report


@bp.route('/runs/<run_id>')
def run_detail(run_id: str):
    report = _load_report(run_id)
    if report is None:
        return jsonify({"error": f"Run {run_id} not found"}), 404
    limit = request.args.get('limit', default=config.engine.display_limit, type=int)
    body = {"run_id": run_id}
    body.update(truncate_report(report, limit))
    return jsonify(body)


@bp.route('/runs/<run_id>/fixes/<path:issue_id>/preview')
def preview_fix(run_id: str, issue_id: str):
    storage = get_storage_service()
    if not storage.get_run_exists(run_id):
        return jsonify({"error": f"Run {run_id} not found"}), 404

    issues = {issue.id: issue for issue in storage.load_issues(run_id)}
    if issue_id not in issues:
        return jsonify({"error": f'Issue "{issue_id}" not found in run {run_id}'}), 404

    planner = FixPlanner(FixQueueSink(storage, run_id))
    return jsonify(planner.preview(issues[issue_id]).to_dict())


@bp.route('/runs/<run_id>/fixes', methods=['POST'])
def apply_fixes(run_id: str):
    """
    Queue fixes for a run.

    Body: {"issue_ids": [...]} or {"all": true} for every auto-fixable issue.
    """
    storage = get_storage_service()
    if not storage.get_run_exists(run_id):
        return jsonify({"error": f"Run {run_id} not found"}), 404

    payload = _require_json()
    issues = storage.load_issues(run_id)
    if payload.get("all"):
        selected = [issue for issue in issues if issue.auto_fixable]
    else:
        issue_ids = payload.get("issue_ids")
        if not isinstance(issue_ids, list) or not issue_ids:
            raise ValueError("'issue_ids' must be a non-empty list")
        by_id = {issue.id: issue for issue in issues}
        missing = [issue_id for issue_id in issue_ids if issue_id not in by_id]
        if missing:
            return jsonify({"error": "Unknown issue ids", "issue_ids": missing}), 404
        selected = [by_id[issue_id] for issue_id in issue_ids]

    batch = FixPlanner(FixQueueSink(storage, run_id)).apply_many(selected)
    return jsonify(batch.to_dict())


# ==================== Reconciliation and aging ====================

@bp.route('/reconcile/bank', methods=['POST'])
def reconcile_bank():
    """
    Match bank book lines with statement lines. With "as_of" the response
    also carries the bank reconciliation statement and uncleared aging.
    """
    payload = _require_json()
    period = _parse_period(payload)
    book = parse_records(payload.get("book"), "book")
    statement = parse_records(payload.get("statement"), "statement")

    reconciler = ComplianceReconciler(config.reconciliation, config.aging)
    report = reconciler.reconcile_bank_statement(book, statement, period)
    body = report.to_dict()
    body["kpis"] = calculate_reconciliation_kpis(report.results_frame())

    if payload.get("as_of"):
        as_of = _require_as_of(payload)
        body["brs"] = reconciler.bank_reconciliation_statement(book, as_of).to_dict()
        body["uncleared_aging"] = reconciler.uncleared_instrument_aging(book, as_of).to_dict()
    return jsonify(body)


@bp.route('/reconcile/gst', methods=['POST'])
def reconcile_gst():
    """Match register lines with return data; optionally compare tax totals per head."""
    payload = _require_json()
    period = _parse_period(payload)
    book = parse_records(payload.get("book"), "book")
    filed = parse_records(payload.get("filed"), "filed")

    reconciler = ComplianceReconciler(config.reconciliation, config.aging)
    body = reconciler.reconcile_gst_return(book, filed, period).to_dict()

    totals = payload.get("totals")
    if totals:
        sides = (totals.get("books") or {}, totals.get("filed") or {}) if isinstance(totals, dict) else (None,)
        if not all(isinstance(side, dict) for side in sides):
            raise ValueError("'totals' must be an object with 'books' and 'filed' objects")
        books = {head: _parse_decimal(v, f"totals.books.{head}") for head, v in (totals.get("books") or {}).items()}
        returned = {head: _parse_decimal(v, f"totals.filed.{head}") for head, v in (totals.get("filed") or {}).items()}
        body["totals"] = reconciler.compare_tax_totals(books, returned).to_dict()
    return jsonify(body)


@bp.route('/aging/<side>', methods=['POST'])
def party_aging(side: str):
    if side not in AGING_SIDES:
        return jsonify({"error": f"Unknown aging side '{side}'", "sides": list(AGING_SIDES)}), 404

    payload = _require_json()
    as_of = _require_as_of(payload)
    ledgers = parse_ledgers(payload.get("ledgers"))
    bills = parse_records(payload.get("bills"), "bills")

    reconciler = ComplianceReconciler(config.reconciliation, config.aging)
    if side == "receivables":
        parties = reconciler.receivables_aging(ledgers, bills, as_of)
    else:
        parties = reconciler.payables_aging(ledgers, bills, as_of)

    return jsonify({
        "side": side,
        "as_of": as_of.isoformat(),
        "total": float(sum((p.total for p in parties), Decimal("0"))),
        "parties": [p.to_dict() for p in parties],
    })
