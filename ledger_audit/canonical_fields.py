"""
Canonical field definitions for the ledger audit engine.

This module is the single source of truth for column names used by the
workbook provider, report frames and persistence. Raw ERP export column
names should NEVER be referenced outside of mappings.py.
"""
from enum import Enum
from typing import FrozenSet, Iterable, Tuple


class CanonicalField(str, Enum):
    """
    Canonical field names used throughout the engine.

    Inheriting from str makes these usable as dictionary keys and
    compatible with pandas DataFrame column operations.
    """

    # ==================== Ledger Masters ====================
    LEDGER_NAME = "ledger_name"
    """Ledger account name (unique within a company)"""

    PARENT_GROUP = "parent_group"
    """Classification group the ledger sits under"""

    OPENING_BALANCE = "opening_balance"
    CLOSING_BALANCE = "closing_balance"
    """Signed balances, positive = debit"""

    GSTIN = "gstin"
    """Party GST registration number"""

    GST_REGISTRATION_TYPE = "gst_registration_type"
    PAN = "pan"
    """Income tax permanent account number"""

    TDS_DEDUCTEE_TYPE = "tds_deductee_type"
    STATE = "state"
    GST_APPLICABLE = "gst_applicable"
    TDS_APPLICABLE = "tds_applicable"

    # ==================== Stock Items ====================
    ITEM_NAME = "item_name"
    HSN_CODE = "hsn_code"
    """Classification code for goods"""

    TAX_RATE = "tax_rate"
    UNIT_OF_MEASURE = "unit_of_measure"
    OPENING_QUANTITY = "opening_quantity"
    CLOSING_QUANTITY = "closing_quantity"
    OPENING_VALUE = "opening_value"
    CLOSING_VALUE = "closing_value"

    # ==================== Company Profile ====================
    COMPANY_NAME = "company_name"
    TAN = "tan"
    """Tax deduction account number"""

    # ==================== Transactions ====================
    TRANSACTION_DATE = "transaction_date"
    EXTERNAL_REFERENCE = "external_reference"
    """Invoice / voucher number"""

    COUNTERPARTY_ID = "counterparty_id"
    """GSTIN or party name"""

    AMOUNT = "amount"
    INSTRUMENT_ID = "instrument_id"
    """Cheque / UTR / reference number"""

    VOUCHER_TYPE = "voucher_type"
    RECORD_ID = "record_id"
    NARRATION = "narration"
    CLEARED_DATE = "cleared_date"
    """Bank clearing date"""

    # ==================== Issues ====================
    ISSUE_ID = "issue_id"
    RUN_ID = "run_id"
    CATEGORY = "category"
    SEVERITY = "severity"
    TITLE = "title"
    DESCRIPTION = "description"
    CURRENT_VALUE = "current_value"
    SUGGESTED_VALUE = "suggested_value"
    AFFECTED_SUBJECTS = "affected_subjects"
    AFFECTED_COUNT = "affected_count"
    AUTO_FIXABLE = "auto_fixable"
    FIX_KIND = "fix_kind"
    FIX_TARGET = "fix_target"

    # ==================== Match Results ====================
    MATCH_TYPE = "match_type"
    DAYS_DIFFERENCE = "days_difference"
    BOOK_RECORD_ID = "book_record_id"
    BOOK_DATE = "book_date"
    BOOK_AMOUNT = "book_amount"
    EXTERNAL_RECORD_ID = "external_record_id"
    EXTERNAL_DATE = "external_date"
    EXTERNAL_AMOUNT = "external_amount"


# ==================== Field Groups ====================

REQUIRED_LEDGER_FIELDS: FrozenSet[CanonicalField] = frozenset({
    CanonicalField.LEDGER_NAME,
    CanonicalField.PARENT_GROUP,
    CanonicalField.CLOSING_BALANCE,
})

REQUIRED_STOCK_ITEM_FIELDS: FrozenSet[CanonicalField] = frozenset({
    CanonicalField.ITEM_NAME,
})

REQUIRED_COMPANY_FIELDS: FrozenSet[CanonicalField] = frozenset({
    CanonicalField.COMPANY_NAME,
})

REQUIRED_TRANSACTION_FIELDS: FrozenSet[CanonicalField] = frozenset({
    CanonicalField.TRANSACTION_DATE,
    CanonicalField.EXTERNAL_REFERENCE,
    CanonicalField.COUNTERPARTY_ID,
    CanonicalField.AMOUNT,
})

# Output column order for the issues frame
ISSUE_FIELDS: Tuple[CanonicalField, ...] = (
    CanonicalField.ISSUE_ID,
    CanonicalField.RUN_ID,
    CanonicalField.CATEGORY,
    CanonicalField.SEVERITY,
    CanonicalField.TITLE,
    CanonicalField.DESCRIPTION,
    CanonicalField.CURRENT_VALUE,
    CanonicalField.SUGGESTED_VALUE,
    CanonicalField.AFFECTED_SUBJECTS,
    CanonicalField.AFFECTED_COUNT,
    CanonicalField.AUTO_FIXABLE,
    CanonicalField.FIX_KIND,
    CanonicalField.FIX_TARGET,
)

# Output column order for the match results frame
MATCH_RESULT_FIELDS: Tuple[CanonicalField, ...] = (
    CanonicalField.MATCH_TYPE,
    CanonicalField.DAYS_DIFFERENCE,
    CanonicalField.INSTRUMENT_ID,
    CanonicalField.BOOK_RECORD_ID,
    CanonicalField.BOOK_DATE,
    CanonicalField.BOOK_AMOUNT,
    CanonicalField.EXTERNAL_RECORD_ID,
    CanonicalField.EXTERNAL_DATE,
    CanonicalField.EXTERNAL_AMOUNT,
)

AMOUNT_FIELDS: FrozenSet[CanonicalField] = frozenset({
    CanonicalField.OPENING_BALANCE,
    CanonicalField.CLOSING_BALANCE,
    CanonicalField.TAX_RATE,
    CanonicalField.OPENING_QUANTITY,
    CanonicalField.CLOSING_QUANTITY,
    CanonicalField.OPENING_VALUE,
    CanonicalField.CLOSING_VALUE,
    CanonicalField.AMOUNT,
})
"""Fields containing decimal quantities"""

DATE_FIELDS: FrozenSet[CanonicalField] = frozenset({
    CanonicalField.TRANSACTION_DATE,
    CanonicalField.CLEARED_DATE,
})

FLAG_FIELDS: FrozenSet[CanonicalField] = frozenset({
    CanonicalField.GST_APPLICABLE,
    CanonicalField.TDS_APPLICABLE,
})


def get_field_names(fields: Iterable[CanonicalField]) -> Tuple[str, ...]:
    """
    Convert CanonicalField enums to a tuple of string names.

    Example:
        >>> df[list(get_field_names(ISSUE_FIELDS))]
    """
    return tuple(f.value for f in fields)
