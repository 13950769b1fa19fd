"""
Source-to-canonical field mappings for ERP workbook exports.

This module is the ONLY place where raw source column names should appear.
All other modules use CanonicalField enums exclusively.

Mappings define how to transform raw source data into canonical format:
1. Column name mapping (raw -> canonical)
2. Value transformations (flags, Dr/Cr amounts, identifiers)
3. Row filters
"""
import logging
import math
import re
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, List, Optional

import pandas as pd

from .canonical_fields import CanonicalField

logger = logging.getLogger(__name__)


# ==================== Raw Source Column Names ====================
# These are the ONLY references to raw source column names in the entire codebase

class LedgerSourceColumns:
    """Raw column names from the ledger master export."""
    NAME = "NAME"
    PARENT = "PARENT"
    OPENING_BALANCE = "OPENINGBALANCE"
    CLOSING_BALANCE = "CLOSINGBALANCE"
    PARTY_GSTIN = "PARTYGSTIN"
    GST_REGISTRATION_TYPE = "GSTREGISTRATIONTYPE"
    INCOME_TAX_NUMBER = "INCOMETAXNUMBER"
    TDS_DEDUCTEE_TYPE = "TDSDEDUCTEETYPE"
    LEDGER_STATE_NAME = "LEDGERSTATENAME"
    GST_APPLICABLE = "GSTAPPLICABLE"
    IS_TDS_APPLICABLE = "ISTDSAPPLICABLE"


class StockItemSourceColumns:
    """Raw column names from the stock item export."""
    NAME = "NAME"
    HSN_CODE = "HSNCODE"
    GST_RATE = "GSTRATE"
    BASE_UNITS = "BASEUNITS"
    OPENING_BALANCE = "OPENINGBALANCE"
    CLOSING_BALANCE = "CLOSINGBALANCE"
    OPENING_VALUE = "OPENINGVALUE"
    CLOSING_VALUE = "CLOSINGVALUE"


class CompanySourceColumns:
    NAME = "NAME"
    GSTIN = "GSTIN"
    INCOME_TAX_NUMBER = "INCOMETAXNUMBER"
    TAN_NUMBER = "TANNUMBER"
    STATE_NAME = "STATENAME"


class VoucherSourceColumns:
    """Raw column names shared by book vouchers and statement/return lines."""
    DATE = "DATE"
    VOUCHER_NUMBER = "VOUCHERNUMBER"
    PARTY_LEDGER_NAME = "PARTYLEDGERNAME"
    AMOUNT = "AMOUNT"
    INSTRUMENT_NUMBER = "INSTRUMENTNUMBER"
    VOUCHER_TYPE_NAME = "VOUCHERTYPENAME"
    GUID = "GUID"
    NARRATION = "NARRATION"
    BANK_DATE = "BANKDATE"


# ==================== Value Transforms ====================

_DR_CR = re.compile(r"^\s*(-?[\d,]*\.?\d*)\s*(dr|cr)?\.?\s*$", re.IGNORECASE)
_TRUE_FLAGS = {"yes", "y", "true", "1", "applicable"}
_FALSE_FLAGS = {"no", "n", "false", "0", "not applicable"}


def is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    if value is pd.NaT:
        return True
    return isinstance(value, str) and not value.strip()


def to_text(value: Any) -> Optional[str]:
    """Identifier text; whole floats read from Excel lose their trailing .0."""
    if is_blank(value):
        return None
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def to_flag(value: Any) -> Optional[bool]:
    """Tri-state flag: None when the ERP never configured it."""
    if is_blank(value):
        return None
    if isinstance(value, bool):
        return value
    lowered = str(value).strip().lower()
    if lowered in _TRUE_FLAGS:
        return True
    if lowered in _FALSE_FLAGS:
        return False
    return None


def to_decimal(value: Any) -> Optional[Decimal]:
    """
    Parse an amount. Accepts numbers and "1,234.50 Dr" / "800 Cr" strings;
    debit is positive, credit negative.
    """
    if is_blank(value):
        return None
    if isinstance(value, Decimal):
        return value
    if isinstance(value, (int, float)):
        return Decimal(str(value))

    match = _DR_CR.match(str(value))
    if not match or not match.group(1) or match.group(1) in ("-", ".", "-."):
        raise ValueError(f"Cannot parse amount {value!r}")
    try:
        amount = Decimal(match.group(1).replace(",", ""))
    except InvalidOperation as e:
        raise ValueError(f"Cannot parse amount {value!r}") from e
    if match.group(2) and match.group(2).lower() == "cr":
        amount = -abs(amount)
    return amount


def _series(func: Callable[[Any], Any]) -> Callable[[pd.Series], pd.Series]:
    def transform(series: pd.Series) -> pd.Series:
        return series.map(func).astype(object)
    transform.__name__ = func.__name__
    return transform


# ==================== Source Mapping Configuration ====================

@dataclass
class ColumnTransform:
    """Defines a transformation for a single column."""
    source_column: str
    canonical_field: CanonicalField
    transform_func: Optional[Callable[[pd.Series], pd.Series]] = None
    optional: bool = False

    def apply(self, df: pd.DataFrame) -> pd.Series:
        """Apply transformation to source data."""
        if self.source_column not in df.columns:
            if self.optional:
                return pd.Series([None] * len(df), index=df.index, dtype=object)
            raise ValueError(f"Source column '{self.source_column}' not found in DataFrame")

        series = df[self.source_column]

        if self.transform_func is not None:
            return self.transform_func(series)

        return series


@dataclass
class SourceMapping:
    """
    Complete mapping configuration for a data source.

    Example usage in io.py:
        >>> frame = apply_source_mapping(df_raw, LEDGER_MAPPING)
        >>> # frame now has CanonicalField columns only
    """

    name: str
    """Source name (e.g., 'ledgers')"""

    column_transforms: List[ColumnTransform]
    """List of column transformations"""

    row_filter: Optional[Callable[[pd.DataFrame], pd.DataFrame]] = None
    """Optional function to filter rows on SOURCE data"""

    required_source_columns: List[str] = field(default_factory=list)

    def __post_init__(self):
        if not self.required_source_columns:
            self.required_source_columns = [
                t.source_column for t in self.column_transforms if not t.optional
            ]


def _drop_unnamed(df: pd.DataFrame) -> pd.DataFrame:
    """Exports end with blank and totals rows; keep only named subjects."""
    names = df["NAME"].map(to_text)
    return df[names.notna()]


def _drop_blank_vouchers(df: pd.DataFrame) -> pd.DataFrame:
    return df[df[VoucherSourceColumns.AMOUNT].map(lambda v: not is_blank(v))]


_text = _series(to_text)
_flag = _series(to_flag)
_amount = _series(to_decimal)


LEDGER_MAPPING = SourceMapping(
    name="ledgers",
    column_transforms=[
        ColumnTransform(LedgerSourceColumns.NAME, CanonicalField.LEDGER_NAME, _text),
        ColumnTransform(LedgerSourceColumns.PARENT, CanonicalField.PARENT_GROUP, _text),
        ColumnTransform(LedgerSourceColumns.CLOSING_BALANCE, CanonicalField.CLOSING_BALANCE, _amount),
        ColumnTransform(LedgerSourceColumns.OPENING_BALANCE, CanonicalField.OPENING_BALANCE, _amount, optional=True),
        ColumnTransform(LedgerSourceColumns.PARTY_GSTIN, CanonicalField.GSTIN, _text, optional=True),
        ColumnTransform(LedgerSourceColumns.GST_REGISTRATION_TYPE, CanonicalField.GST_REGISTRATION_TYPE,
                        _text, optional=True),
        ColumnTransform(LedgerSourceColumns.INCOME_TAX_NUMBER, CanonicalField.PAN, _text, optional=True),
        ColumnTransform(LedgerSourceColumns.TDS_DEDUCTEE_TYPE, CanonicalField.TDS_DEDUCTEE_TYPE,
                        _text, optional=True),
        ColumnTransform(LedgerSourceColumns.LEDGER_STATE_NAME, CanonicalField.STATE, _text, optional=True),
        ColumnTransform(LedgerSourceColumns.GST_APPLICABLE, CanonicalField.GST_APPLICABLE, _flag, optional=True),
        ColumnTransform(LedgerSourceColumns.IS_TDS_APPLICABLE, CanonicalField.TDS_APPLICABLE, _flag, optional=True),
    ],
    row_filter=_drop_unnamed,
)

STOCK_ITEM_MAPPING = SourceMapping(
    name="stock_items",
    column_transforms=[
        ColumnTransform(StockItemSourceColumns.NAME, CanonicalField.ITEM_NAME, _text),
        ColumnTransform(StockItemSourceColumns.HSN_CODE, CanonicalField.HSN_CODE, _text, optional=True),
        ColumnTransform(StockItemSourceColumns.GST_RATE, CanonicalField.TAX_RATE, _amount, optional=True),
        ColumnTransform(StockItemSourceColumns.BASE_UNITS, CanonicalField.UNIT_OF_MEASURE, _text),
        ColumnTransform(StockItemSourceColumns.OPENING_BALANCE, CanonicalField.OPENING_QUANTITY,
                        _amount, optional=True),
        ColumnTransform(StockItemSourceColumns.CLOSING_BALANCE, CanonicalField.CLOSING_QUANTITY,
                        _amount, optional=True),
        ColumnTransform(StockItemSourceColumns.OPENING_VALUE, CanonicalField.OPENING_VALUE, _amount, optional=True),
        ColumnTransform(StockItemSourceColumns.CLOSING_VALUE, CanonicalField.CLOSING_VALUE, _amount, optional=True),
    ],
    row_filter=_drop_unnamed,
)

COMPANY_MAPPING = SourceMapping(
    name="company",
    column_transforms=[
        ColumnTransform(CompanySourceColumns.NAME, CanonicalField.COMPANY_NAME, _text),
        ColumnTransform(CompanySourceColumns.GSTIN, CanonicalField.GSTIN, _text, optional=True),
        ColumnTransform(CompanySourceColumns.INCOME_TAX_NUMBER, CanonicalField.PAN, _text, optional=True),
        ColumnTransform(CompanySourceColumns.TAN_NUMBER, CanonicalField.TAN, _text, optional=True),
        ColumnTransform(CompanySourceColumns.STATE_NAME, CanonicalField.STATE, _text),
    ],
    row_filter=_drop_unnamed,
)

TRANSACTION_MAPPING = SourceMapping(
    name="transactions",
    column_transforms=[
        ColumnTransform(VoucherSourceColumns.DATE, CanonicalField.TRANSACTION_DATE),
        ColumnTransform(VoucherSourceColumns.VOUCHER_NUMBER, CanonicalField.EXTERNAL_REFERENCE, _text),
        ColumnTransform(VoucherSourceColumns.PARTY_LEDGER_NAME, CanonicalField.COUNTERPARTY_ID, _text),
        ColumnTransform(VoucherSourceColumns.AMOUNT, CanonicalField.AMOUNT, _amount),
        ColumnTransform(VoucherSourceColumns.INSTRUMENT_NUMBER, CanonicalField.INSTRUMENT_ID, _text, optional=True),
        ColumnTransform(VoucherSourceColumns.VOUCHER_TYPE_NAME, CanonicalField.VOUCHER_TYPE, _text, optional=True),
        ColumnTransform(VoucherSourceColumns.GUID, CanonicalField.RECORD_ID, _text, optional=True),
        ColumnTransform(VoucherSourceColumns.NARRATION, CanonicalField.NARRATION, _text, optional=True),
        ColumnTransform(VoucherSourceColumns.BANK_DATE, CanonicalField.CLEARED_DATE, optional=True),
    ],
    row_filter=_drop_blank_vouchers,
)

STATEMENT_MAPPING = SourceMapping(
    name="statement",
    column_transforms=[
        ColumnTransform(VoucherSourceColumns.DATE, CanonicalField.TRANSACTION_DATE),
        ColumnTransform(VoucherSourceColumns.VOUCHER_NUMBER, CanonicalField.EXTERNAL_REFERENCE, _text),
        ColumnTransform(VoucherSourceColumns.PARTY_LEDGER_NAME, CanonicalField.COUNTERPARTY_ID, _text),
        ColumnTransform(VoucherSourceColumns.AMOUNT, CanonicalField.AMOUNT, _amount),
        ColumnTransform(VoucherSourceColumns.INSTRUMENT_NUMBER, CanonicalField.INSTRUMENT_ID, _text, optional=True),
        ColumnTransform(VoucherSourceColumns.GUID, CanonicalField.RECORD_ID, _text, optional=True),
        ColumnTransform(VoucherSourceColumns.NARRATION, CanonicalField.NARRATION, _text, optional=True),
    ],
    row_filter=_drop_blank_vouchers,
)


# ==================== Mapping Application Utilities ====================

def apply_source_mapping(df: pd.DataFrame, mapping: SourceMapping) -> pd.DataFrame:
    """
    Apply a source mapping to transform raw data to canonical format.

    Process:
    1. Validate required source columns exist
    2. Apply row filter (if specified) - filters on SOURCE data
    3. Apply column transformations - transforms SOURCE columns to CANONICAL columns

    Args:
        df: Raw source DataFrame
        mapping: SourceMapping configuration

    Returns:
        DataFrame with canonical field names
    """
    logger.debug(f"[MAPPING] Processing source: {mapping.name}, input shape {df.shape}")

    missing = [col for col in mapping.required_source_columns if col not in df.columns]
    if missing:
        raise ValueError(
            f"Source '{mapping.name}' is missing required columns: {missing}. "
            f"Available columns: {df.columns.tolist()}"
        )

    df = df.copy()

    if mapping.row_filter is not None:
        original_count = len(df)
        df = mapping.row_filter(df)
        logger.debug(
            f"[MAPPING] Row filter applied: {original_count} -> {len(df)} rows "
            f"({original_count - len(df)} filtered out)"
        )

    result_data = {}
    for transform in mapping.column_transforms:
        try:
            result_data[transform.canonical_field.value] = transform.apply(df)
        except ValueError as e:
            raise ValueError(
                f"Error transforming column '{transform.source_column}' -> "
                f"'{transform.canonical_field.value}': {e}"
            ) from e

    result_df = pd.DataFrame(result_data, index=df.index).reset_index(drop=True)
    logger.debug(f"[MAPPING] Final output: {result_df.shape}, columns: {result_df.columns.tolist()}")
    return result_df
