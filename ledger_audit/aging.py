"""
Day-bucket aging of dated amounts relative to an as-of date.
"""
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Dict, Iterable, List, Optional, Tuple

from .errors import InvalidRange
from .models import TransactionRecord


class AgingBucket(str, Enum):
    """Day ranges, upper bound inclusive."""
    CURRENT = "current"
    DAYS_30 = "days_30"
    DAYS_60 = "days_60"
    DAYS_90 = "days_90"
    DAYS_180 = "days_180"
    ABOVE_180 = "above_180"


# (upper bound in days, bucket); anything above the last bound is ABOVE_180
BUCKET_BOUNDS: Tuple[Tuple[int, AgingBucket], ...] = (
    (0, AgingBucket.CURRENT),
    (30, AgingBucket.DAYS_30),
    (60, AgingBucket.DAYS_60),
    (90, AgingBucket.DAYS_90),
    (180, AgingBucket.DAYS_180),
)


def _as_date(value) -> date:
    if isinstance(value, datetime):
        return value.date()
    return value


def age_in_days(record_date: date, as_of: date) -> int:
    """Whole days elapsed between record_date and as_of."""
    return (_as_date(as_of) - _as_date(record_date)).days


def bucket_for_age(age_days: Optional[int]) -> AgingBucket:
    if age_days is None:
        return AgingBucket.CURRENT
    for upper, bucket in BUCKET_BOUNDS:
        if age_days <= upper:
            return bucket
    return AgingBucket.ABOVE_180


@dataclass
class BucketTotal:
    amount: Decimal = Decimal("0")
    records: List[TransactionRecord] = field(default_factory=list)

    def add(self, record: TransactionRecord) -> None:
        self.amount += record.amount
        self.records.append(record)


@dataclass
class AgingBuckets:
    """Result of one aging run. Every input record sits in exactly one bucket."""
    as_of: date
    stale_threshold_days: int
    buckets: Dict[AgingBucket, BucketTotal] = field(
        default_factory=lambda: {bucket: BucketTotal() for bucket in AgingBucket}
    )

    def __getitem__(self, bucket: AgingBucket) -> BucketTotal:
        return self.buckets[bucket]

    @property
    def total(self) -> Decimal:
        return sum((b.amount for b in self.buckets.values()), Decimal("0"))

    @property
    def record_count(self) -> int:
        return sum(len(b.records) for b in self.buckets.values())

    def stale_entries(self) -> List[TransactionRecord]:
        """Dated records older than the stale threshold (write-back candidates)."""
        stale = []
        for bucket in self.buckets.values():
            for record in bucket.records:
                if record.date is not None and age_in_days(record.date, self.as_of) > self.stale_threshold_days:
                    stale.append(record)
        return stale

    def to_dict(self) -> dict:
        return {
            "as_of": self.as_of.isoformat(),
            "total": float(self.total),
            "buckets": {
                bucket.value: {
                    "amount": float(totals.amount),
                    "count": len(totals.records),
                    "records": [r.to_dict() for r in totals.records],
                }
                for bucket, totals in self.buckets.items()
            },
        }


class AgingCalculator:
    """Bucket dated amounts into Current / 30 / 60 / 90 / 180 / above."""

    def __init__(self, stale_threshold_days: int = 180):
        if stale_threshold_days < 0:
            raise ValueError("stale_threshold_days must be non-negative")
        self.stale_threshold_days = stale_threshold_days

    def bucket(self, records: Iterable[TransactionRecord], as_of: date) -> AgingBuckets:
        """
        Age each record against as_of.

        Records without a date are placed in Current; a record without
        sub-allocations is assumed not yet aged.
        """
        if not isinstance(as_of, date):
            raise InvalidRange(f"Aging as-of date must be a date, got {as_of!r}")
        as_of = _as_date(as_of)

        result = AgingBuckets(as_of=as_of, stale_threshold_days=self.stale_threshold_days)
        for record in records:
            age = age_in_days(record.date, as_of) if record.date is not None else None
            result.buckets[bucket_for_age(age)].add(record)
        return result
