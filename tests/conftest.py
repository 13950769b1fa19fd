from decimal import Decimal

import pytest

from config import EngineConfig, ReconciliationConfig, ScoringConfig
from ledger_audit import (
    AuditEngine,
    CompanyProfile,
    CompanySnapshot,
    LedgerSnapshot,
    MutationSink,
    default_catalog,
)
from ledger_audit.errors import MutationFailed


GST_LEDGER_NAMES = (
    "Output IGST", "Output CGST", "Output SGST",
    "Input IGST", "Input CGST", "Input SGST",
)
TDS_LEDGER_NAMES = (
    "TDS 194C Payable", "TDS on Professional", "TDS on Commission",
    "TDS on Rent", "TDS on Interest",
)


class RecordingMutationSink(MutationSink):
    """Records every call; subjects in ``fail_on`` are rejected."""

    def __init__(self, fail_on=(), crash_on=(), on_call=None):
        self.calls = []
        self.fail_on = set(fail_on)
        self.crash_on = set(crash_on)
        self.on_call = on_call

    def _record(self, *call):
        subject = call[1]
        if subject in self.fail_on:
            raise MutationFailed(subject, "rejected by ERP")
        if subject in self.crash_on:
            raise RuntimeError("connection reset")
        self.calls.append(call)
        if self.on_call is not None:
            self.on_call(call)

    def create_subject(self, name, attributes):
        self._record("create_subject", name, dict(attributes))

    def reclassify(self, subject, new_classification):
        self._record("reclassify", subject, new_classification)

    def set_attribute(self, subject, attribute, value):
        self._record("set_attribute", subject, attribute, value)

    def rename(self, subject, new_name):
        self._record("rename", subject, new_name)


def tax_ledger(name, balance="0"):
    return LedgerSnapshot(name=name, parent_group="Duties & Taxes", closing_balance=Decimal(balance))


@pytest.fixture
def catalog():
    return default_catalog()


@pytest.fixture
def recon_config():
    return ReconciliationConfig(date_tolerance_days=7, amount_tolerance=Decimal("1.00"))


@pytest.fixture
def engine(catalog):
    return AuditEngine(catalog, scoring=ScoringConfig(), engine_config=EngineConfig(parallel=True, max_workers=6))


@pytest.fixture
def company_profile():
    return CompanyProfile(
        name="Acme Traders",
        gstin="27AAPFU0939F1ZV",
        pan="AAPFU0939F",
        tan="MUMA12345B",
        state="Maharashtra",
    )


@pytest.fixture
def complete_tax_ledgers():
    return tuple(tax_ledger(name) for name in GST_LEDGER_NAMES + TDS_LEDGER_NAMES)


@pytest.fixture
def snapshot(company_profile, complete_tax_ledgers):
    return CompanySnapshot(company_profile=company_profile, ledgers=complete_tax_ledgers)


@pytest.fixture
def sink():
    return RecordingMutationSink()
