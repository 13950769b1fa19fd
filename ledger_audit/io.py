"""
Snapshot providers: the engine's only way to read company data.

CompanySnapshot holds an already materialized snapshot in memory.
ExcelSnapshotProvider reads an ERP workbook export, detects which sheet
holds which source and maps raw columns to canonical fields.
"""
import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

import pandas as pd

from config import DataSourceConfig, WorkbookConfig
from .canonical_fields import (
    CanonicalField,
    REQUIRED_COMPANY_FIELDS,
    REQUIRED_LEDGER_FIELDS,
    REQUIRED_STOCK_ITEM_FIELDS,
    REQUIRED_TRANSACTION_FIELDS,
)
from .errors import DataUnavailable
from .mappings import (
    COMPANY_MAPPING,
    LEDGER_MAPPING,
    STATEMENT_MAPPING,
    STOCK_ITEM_MAPPING,
    TRANSACTION_MAPPING,
    SourceMapping,
    apply_source_mapping,
    is_blank,
)
from .models import CompanyProfile, DateRange, LedgerSnapshot, StockItemSnapshot, TransactionRecord
from .schemas import decimal_or, enforce_dtypes, validate_columns

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


class SnapshotProvider(ABC):
    """
    Source of one company's masters and transactions.

    Any call may raise DataUnavailable; the caller scopes that failure to
    the category or reconciliation that needed the data.
    """

    @abstractmethod
    def fetch_ledgers(self) -> List[LedgerSnapshot]:
        pass

    @abstractmethod
    def fetch_stock_items(self) -> List[StockItemSnapshot]:
        pass

    @abstractmethod
    def fetch_company_profile(self) -> CompanyProfile:
        pass

    @abstractmethod
    def fetch_transactions(
        self,
        date_range: Optional[DateRange] = None,
        category: Optional[str] = None,
    ) -> List[TransactionRecord]:
        pass


def filter_transactions(
    records: Sequence[TransactionRecord],
    date_range: Optional[DateRange] = None,
    category: Optional[str] = None,
) -> List[TransactionRecord]:
    """Records inside the date window whose category matches (case-insensitive)."""
    result = []
    for record in records:
        if date_range is not None and not date_range.contains(record.date):
            continue
        if category is not None and (record.category or "").lower() != category.lower():
            continue
        result.append(record)
    return result


@dataclass(frozen=True)
class CompanySnapshot(SnapshotProvider):
    """In-memory snapshot of one company."""
    company_profile: CompanyProfile
    ledgers: Tuple[LedgerSnapshot, ...] = ()
    stock_items: Tuple[StockItemSnapshot, ...] = ()
    transactions: Tuple[TransactionRecord, ...] = ()

    def fetch_ledgers(self) -> List[LedgerSnapshot]:
        return list(self.ledgers)

    def fetch_stock_items(self) -> List[StockItemSnapshot]:
        return list(self.stock_items)

    def fetch_company_profile(self) -> CompanyProfile:
        return self.company_profile

    def fetch_transactions(self, date_range=None, category=None) -> List[TransactionRecord]:
        return filter_transactions(self.transactions, date_range, category)


def detect_sheet(
    sheets: Dict[str, pd.DataFrame],
    source_config: DataSourceConfig,
    exclude: Sequence[str] = (),
) -> Optional[str]:
    """
    Detect which sheet matches a data source config.

    First tries to match by keywords in sheet name.
    Then validates by required columns. Sheets in ``exclude`` are skipped
    so sources with the same columns (book vs. statement) don't collide.
    """
    candidates = {name: df for name, df in sheets.items() if name not in exclude}

    # Try keyword matching first
    for sheet_name, df in candidates.items():
        sheet_lower = sheet_name.lower()
        if any(keyword.lower() in sheet_lower for keyword in source_config.detection_keywords):
            is_valid, _ = source_config.column_mapping.validate(df.columns.tolist())
            if is_valid:
                return sheet_name

    # Fall back to column validation only
    for sheet_name, df in candidates.items():
        is_valid, _ = source_config.column_mapping.validate(df.columns.tolist())
        if is_valid:
            return sheet_name

    return None


def _text(value) -> Optional[str]:
    if is_blank(value):
        return None
    return str(value)


def _flag(value) -> Optional[bool]:
    if is_blank(value):
        return None
    return bool(value)


def _date(value):
    return None if is_blank(value) else value


class ExcelSnapshotProvider(SnapshotProvider):
    """
    Snapshot provider over an Excel workbook export.

    The workbook is read once, on first use. A source whose sheet cannot be
    detected raises DataUnavailable for that source only.
    """

    def __init__(self, file_path: Path, workbook_config: Optional[WorkbookConfig] = None):
        self.file_path = Path(file_path)
        self.workbook_config = workbook_config or WorkbookConfig()
        self._sheets: Optional[Dict[str, pd.DataFrame]] = None
        self._lock = threading.Lock()

    def load_all_sheets(self) -> Dict[str, pd.DataFrame]:
        """Load all sheets from the workbook."""
        with self._lock:
            if self._sheets is None:
                logger.info(f"[IO] Loading Excel file: {self.file_path}")
                try:
                    self._sheets = pd.read_excel(self.file_path, sheet_name=None)
                except (OSError, ValueError) as e:
                    raise DataUnavailable("workbook", f"{self.file_path}: {e}") from e
                logger.info(f"[IO] Found {len(self._sheets)} sheets: {list(self._sheets.keys())}")
            return self._sheets

    def _load_source(
        self,
        source_config: DataSourceConfig,
        mapping: SourceMapping,
        required_fields,
        exclude: Sequence[str] = (),
    ) -> pd.DataFrame:
        sheets = self.load_all_sheets()
        sheet_name = detect_sheet(sheets, source_config, exclude)
        if sheet_name is None:
            logger.warning(
                f"[IO] Could not detect sheet for '{source_config.name}'. "
                f"Keywords: {source_config.detection_keywords}, "
                f"required columns: {source_config.column_mapping.required_columns}"
            )
            raise DataUnavailable(
                source_config.name,
                f"no sheet with columns {source_config.column_mapping.required_columns}",
            )

        logger.info(f"[IO] Detected sheet '{sheet_name}' for '{source_config.name}'")
        try:
            frame = apply_source_mapping(sheets[sheet_name], mapping)
            validate_columns(frame, required_fields, source_config.name)
        except ValueError as e:
            raise DataUnavailable(source_config.name, str(e)) from e
        return enforce_dtypes(frame)

    def _transactions_sheet(self) -> Optional[str]:
        return detect_sheet(self.load_all_sheets(), self.workbook_config.transactions)

    def fetch_ledgers(self) -> List[LedgerSnapshot]:
        frame = self._load_source(self.workbook_config.ledgers, LEDGER_MAPPING, REQUIRED_LEDGER_FIELDS)
        F = CanonicalField
        return [
            LedgerSnapshot(
                name=row[F.LEDGER_NAME.value],
                parent_group=_text(row[F.PARENT_GROUP.value]) or "",
                opening_balance=decimal_or(row[F.OPENING_BALANCE.value], ZERO),
                closing_balance=decimal_or(row[F.CLOSING_BALANCE.value], ZERO),
                gstin=_text(row[F.GSTIN.value]),
                gst_registration_type=_text(row[F.GST_REGISTRATION_TYPE.value]),
                pan=_text(row[F.PAN.value]),
                tds_deductee_type=_text(row[F.TDS_DEDUCTEE_TYPE.value]),
                state=_text(row[F.STATE.value]),
                gst_applicable=_flag(row[F.GST_APPLICABLE.value]),
                tds_applicable=_flag(row[F.TDS_APPLICABLE.value]),
            )
            for row in frame.to_dict("records")
        ]

    def fetch_stock_items(self) -> List[StockItemSnapshot]:
        frame = self._load_source(
            self.workbook_config.stock_items, STOCK_ITEM_MAPPING, REQUIRED_STOCK_ITEM_FIELDS
        )
        F = CanonicalField
        return [
            StockItemSnapshot(
                name=row[F.ITEM_NAME.value],
                classification_code=_text(row[F.HSN_CODE.value]),
                tax_rate=decimal_or(row[F.TAX_RATE.value]),
                unit_of_measure=_text(row[F.UNIT_OF_MEASURE.value]),
                opening_quantity=decimal_or(row[F.OPENING_QUANTITY.value], ZERO),
                closing_quantity=decimal_or(row[F.CLOSING_QUANTITY.value], ZERO),
                opening_value=decimal_or(row[F.OPENING_VALUE.value], ZERO),
                closing_value=decimal_or(row[F.CLOSING_VALUE.value], ZERO),
            )
            for row in frame.to_dict("records")
        ]

    def fetch_company_profile(self) -> CompanyProfile:
        frame = self._load_source(self.workbook_config.company, COMPANY_MAPPING, REQUIRED_COMPANY_FIELDS)
        if frame.empty:
            raise DataUnavailable(self.workbook_config.company.name, "company sheet has no rows")
        row = frame.iloc[0]
        F = CanonicalField
        return CompanyProfile(
            name=row[F.COMPANY_NAME.value],
            gstin=_text(row[F.GSTIN.value]),
            pan=_text(row[F.PAN.value]),
            tan=_text(row[F.TAN.value]),
            state=_text(row[F.STATE.value]),
        )

    def _records(self, frame: pd.DataFrame) -> List[TransactionRecord]:
        F = CanonicalField
        records = []
        for row in frame.to_dict("records"):
            records.append(TransactionRecord(
                date=_date(row[F.TRANSACTION_DATE.value]),
                external_reference=_text(row[F.EXTERNAL_REFERENCE.value]) or "",
                counterparty_id=_text(row[F.COUNTERPARTY_ID.value]) or "",
                amount=decimal_or(row[F.AMOUNT.value], ZERO),
                instrument_id=_text(row[F.INSTRUMENT_ID.value]),
                category=_text(row.get(F.VOUCHER_TYPE.value)),
                record_id=_text(row[F.RECORD_ID.value]),
                narration=_text(row[F.NARRATION.value]) or "",
                cleared_date=_date(row.get(F.CLEARED_DATE.value)),
            ))
        return records

    def fetch_transactions(self, date_range=None, category=None) -> List[TransactionRecord]:
        frame = self._load_source(
            self.workbook_config.transactions, TRANSACTION_MAPPING, REQUIRED_TRANSACTION_FIELDS
        )
        return filter_transactions(self._records(frame), date_range, category)

    def fetch_statement(self, date_range: Optional[DateRange] = None) -> List[TransactionRecord]:
        """External-side lines (bank statement or filed return) from their own sheet."""
        book_sheet = self._transactions_sheet()
        exclude = (book_sheet,) if book_sheet else ()
        frame = self._load_source(
            self.workbook_config.statement, STATEMENT_MAPPING, REQUIRED_TRANSACTION_FIELDS, exclude
        )
        return filter_transactions(self._records(frame), date_range)
