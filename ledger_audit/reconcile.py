"""
Two-phase reconciliation of book records against an external record set.

1. EXACT: instrument id + amount (rounded to paise) consumes the first
   unmatched book record carrying the same key.
2. FUZZY: remaining external records take the first remaining book record,
   in original order, whose amount and date sit inside the tolerances.

The fuzzy phase is a greedy first-fit, not an optimal assignment.
"""
import logging
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple

import pandas as pd

from config import ReconciliationConfig
from .canonical_fields import CanonicalField, MATCH_RESULT_FIELDS, get_field_names
from .models import TransactionRecord

logger = logging.getLogger(__name__)

PAISE = Decimal("0.01")

# Matcher options are the reconciliation section of the app config
MatchOptions = ReconciliationConfig


class MatchType(str, Enum):
    EXACT = "Exact"
    AMOUNT_AND_DATE = "AmountAndDate"
    AMOUNT_DATE_TOLERANT = "AmountDateTolerant"
    UNMATCHED = "Unmatched"


@dataclass(frozen=True)
class MatchResult:
    book_record: Optional[TransactionRecord]
    external_record: Optional[TransactionRecord]
    match_type: MatchType
    days_difference: Optional[int] = None

    @property
    def is_matched(self) -> bool:
        return self.match_type != MatchType.UNMATCHED

    def to_dict(self) -> dict:
        return {
            "book_record": self.book_record.to_dict() if self.book_record else None,
            "external_record": self.external_record.to_dict() if self.external_record else None,
            "match_type": self.match_type.value,
            "days_difference": self.days_difference,
        }


@dataclass
class ReconciliationReport:
    matches: List[MatchResult] = field(default_factory=list)
    unmatched_book: List[MatchResult] = field(default_factory=list)
    unmatched_external: List[MatchResult] = field(default_factory=list)

    @property
    def matched_count(self) -> int:
        return len(self.matches)

    @property
    def unmatched_book_count(self) -> int:
        return len(self.unmatched_book)

    @property
    def unmatched_external_count(self) -> int:
        return len(self.unmatched_external)

    @property
    def match_percentage(self) -> float:
        total = self.matched_count + self.unmatched_book_count + self.unmatched_external_count
        return (self.matched_count / total) * 100 if total > 0 else 0.0

    @property
    def results(self) -> List[MatchResult]:
        return self.matches + self.unmatched_book + self.unmatched_external

    def summary(self) -> Dict[str, float]:
        return {
            "total_matched": self.matched_count,
            "total_unmatched_book": self.unmatched_book_count,
            "total_unmatched_external": self.unmatched_external_count,
            "match_percentage": self.match_percentage,
        }

    def to_dict(self) -> dict:
        return {
            "summary": self.summary(),
            "matches": [m.to_dict() for m in self.matches],
            "unmatched_book": [m.to_dict() for m in self.unmatched_book],
            "unmatched_external": [m.to_dict() for m in self.unmatched_external],
        }

    def results_frame(self) -> pd.DataFrame:
        """Flatten all results into one row per MatchResult."""
        columns = list(get_field_names(MATCH_RESULT_FIELDS))
        rows = []
        for result in self.results:
            book = result.book_record
            ext = result.external_record
            rows.append({
                CanonicalField.MATCH_TYPE.value: result.match_type.value,
                CanonicalField.DAYS_DIFFERENCE.value: result.days_difference,
                CanonicalField.BOOK_RECORD_ID.value: book.record_id if book else None,
                CanonicalField.BOOK_DATE.value: book.date if book else None,
                CanonicalField.BOOK_AMOUNT.value: float(book.amount) if book else None,
                CanonicalField.EXTERNAL_RECORD_ID.value: ext.record_id if ext else None,
                CanonicalField.EXTERNAL_DATE.value: ext.date if ext else None,
                CanonicalField.EXTERNAL_AMOUNT.value: float(ext.amount) if ext else None,
                CanonicalField.INSTRUMENT_ID.value: (book or ext).instrument_id,
            })
        return pd.DataFrame(rows, columns=columns)


def rounded_amount(amount: Decimal) -> Decimal:
    return Decimal(amount).quantize(PAISE, rounding=ROUND_HALF_UP)


def exact_key(record: TransactionRecord) -> Optional[Tuple[str, Decimal]]:
    """Exact-phase key, or None when the record carries no instrument id."""
    if not record.instrument_id:
        return None
    return record.instrument_id.strip(), rounded_amount(record.amount)


def counterparty_key(record: TransactionRecord) -> str:
    return (record.counterparty_id or "").strip().upper()


class ReconciliationMatcher:
    """Generic book-vs-external matcher shared by bank and GST reconciliation."""

    def __init__(self, recon_config: Optional[MatchOptions] = None):
        self.recon_config = recon_config or MatchOptions()
        if self.recon_config.date_tolerance_days < 0:
            raise ValueError("date_tolerance_days must be non-negative")
        if self.recon_config.amount_tolerance < 0:
            raise ValueError("amount_tolerance must be non-negative")

    def match(
        self,
        book_records: Sequence[TransactionRecord],
        external_records: Sequence[TransactionRecord],
        same_counterparty: bool = False,
    ) -> ReconciliationReport:
        """
        Match external records against book records.

        With ``same_counterparty`` the fuzzy phase only pairs records whose
        counterparty ids agree (case and surrounding blanks ignored).
        """
        logger.info(
            f"[RECON] Starting reconciliation: {len(book_records)} book, "
            f"{len(external_records)} external records"
        )

        # Positional indexes keep identical records distinct
        book_open = [True] * len(book_records)
        external_match: List[Optional[MatchResult]] = [None] * len(external_records)

        exact_count = self._match_exact(book_records, external_records, book_open, external_match)
        fuzzy_count = self._match_fuzzy(
            book_records, external_records, book_open, external_match, same_counterparty
        )

        report = ReconciliationReport()
        for idx, ext in enumerate(external_records):
            result = external_match[idx]
            if result is None:
                report.unmatched_external.append(MatchResult(None, ext, MatchType.UNMATCHED))
            else:
                report.matches.append(result)

        for idx, book in enumerate(book_records):
            if book_open[idx]:
                report.unmatched_book.append(MatchResult(book, None, MatchType.UNMATCHED))

        logger.info(
            f"[RECON] Reconciliation complete: exact={exact_count}, fuzzy={fuzzy_count}, "
            f"unmatched_book={report.unmatched_book_count}, "
            f"unmatched_external={report.unmatched_external_count}"
        )
        return report

    def _match_exact(self, book_records, external_records, book_open, external_match) -> int:
        """EXACT: key on (instrument id, rounded amount), consume first book record."""
        book_index: Dict[Tuple[str, Decimal], List[int]] = {}
        for idx, book in enumerate(book_records):
            key = exact_key(book)
            if key is not None:
                book_index.setdefault(key, []).append(idx)

        if not book_index:
            logger.info("[RECON] No book records carry an instrument id - skipping exact phase")
            return 0

        matched = 0
        for ext_idx, ext in enumerate(external_records):
            key = exact_key(ext)
            if key is None:
                continue
            candidates = book_index.get(key)
            if not candidates:
                continue
            book_idx = candidates.pop(0)
            book_open[book_idx] = False
            external_match[ext_idx] = MatchResult(book_records[book_idx], ext, MatchType.EXACT)
            matched += 1

        return matched

    def _match_fuzzy(
        self, book_records, external_records, book_open, external_match, same_counterparty=False
    ) -> int:
        """FUZZY: first remaining book record inside amount and date tolerance."""
        tolerance = self.recon_config.amount_tolerance
        day_window = self.recon_config.date_tolerance_days

        matched = 0
        for ext_idx, ext in enumerate(external_records):
            if external_match[ext_idx] is not None:
                continue

            for book_idx, book in enumerate(book_records):
                if not book_open[book_idx]:
                    continue
                if same_counterparty and counterparty_key(book) != counterparty_key(ext):
                    continue
                if abs(book.amount - ext.amount) >= tolerance:
                    continue
                if book.date is None or ext.date is None:
                    continue

                days = abs((ext.date - book.date).days)
                if days > day_window:
                    continue

                match_type = MatchType.AMOUNT_AND_DATE if days == 0 else MatchType.AMOUNT_DATE_TOLERANT
                book_open[book_idx] = False
                external_match[ext_idx] = MatchResult(book, ext, match_type, days_difference=days)
                matched += 1
                break

        return matched
