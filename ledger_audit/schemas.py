"""
Column checks and type coercion for canonical workbook frames.

Dates become ``datetime.date``, money ``Decimal`` and ERP yes/no columns
tri-state flags before any snapshot object is built.
"""
from decimal import Decimal
from typing import Dict, Optional, Set

import pandas as pd

from .canonical_fields import AMOUNT_FIELDS, CanonicalField, DATE_FIELDS, FLAG_FIELDS
from .mappings import is_blank, to_decimal, to_flag


def validate_columns(
    df: pd.DataFrame,
    required_fields: Set[CanonicalField],
    df_name: str = "DataFrame"
) -> None:
    """
    Check that a mapped sheet carries every canonical field its source needs.

    Args:
        df: DataFrame to validate
        required_fields: Set of required CanonicalField enums
        df_name: Source name used in the error (e.g. "ledgers")

    Raises:
        ValueError: listing the missing fields and what the sheet had

    Example:
        >>> validate_columns(frame, REQUIRED_LEDGER_FIELDS, "ledgers")
    """
    required_names = {f.value for f in required_fields}
    available_names = set(df.columns)
    missing = required_names - available_names

    if missing:
        raise ValueError(
            f"{df_name} is missing required canonical fields: {sorted(missing)}. "
            f"Available columns: {sorted(available_names)}"
        )


def _to_date(value):
    if is_blank(value):
        return None
    return pd.Timestamp(value).date()


def enforce_dtypes(
    df: pd.DataFrame,
    dtype_map: Optional[Dict[CanonicalField, str]] = None,
    coerce_errors: bool = True
) -> pd.DataFrame:
    """
    Coerce canonical columns to their Python types (object columns).

    Args:
        df: DataFrame to process
        dtype_map: Optional mapping of fields to dtypes. If None, uses default map.
        coerce_errors: If True, unparseable values become None instead of raising

    Returns:
        DataFrame with enforced dtypes
    """
    df = df.copy()

    if dtype_map is None:
        dtype_map = get_default_dtype_map()

    converters = {"date": _to_date, "decimal": to_decimal, "flag": to_flag}

    for field, dtype in dtype_map.items():
        col_name = field.value

        if col_name not in df.columns:
            continue

        converter = converters.get(dtype)
        if converter is None:
            df[col_name] = df[col_name].astype(dtype)
            continue

        def convert(value, converter=converter):
            try:
                return converter(value)
            except (ValueError, TypeError):
                if coerce_errors:
                    return None
                raise

        try:
            df[col_name] = df[col_name].map(convert).astype(object)
        except (ValueError, TypeError) as e:
            raise ValueError(
                f"Failed to convert column '{col_name}' to dtype '{dtype}': {e}"
            ) from e

    return df


def get_default_dtype_map() -> Dict[CanonicalField, str]:
    """Get default canonical field dtype mappings."""
    dtype_map: Dict[CanonicalField, str] = {}
    for f in DATE_FIELDS:
        dtype_map[f] = "date"
    for f in AMOUNT_FIELDS:
        dtype_map[f] = "decimal"
    for f in FLAG_FIELDS:
        dtype_map[f] = "flag"
    return dtype_map


def decimal_or(value, default: Optional[Decimal] = None) -> Optional[Decimal]:
    """Read a Decimal cell, falling back to default for blanks."""
    if is_blank(value):
        return default
    return value if isinstance(value, Decimal) else Decimal(str(value))
