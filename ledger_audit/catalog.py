"""
Rule catalog: the regulatory content the audit rules evaluate against.

Naming patterns, required ledgers, section keywords, thresholds and identity
formats are data, not engine code. A RuleCatalog is immutable and is passed
explicitly to the engine, so audits for different regimes can run side by
side with different catalogs.

The default catalog targets the Indian GST / TDS regime as configured in a
Tally-style chart of accounts.
"""
import re
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Mapping, Optional, Tuple

from .findings import Severity


@dataclass(frozen=True)
class RequiredLedger:
    """
    A tax ledger that must exist under the tax group.

    The ledger is considered present when any ledger under the tax group has
    a name containing one of ``patterns`` (case-insensitive).
    """
    key: str
    display_name: str
    patterns: Tuple[str, ...]
    duty_type: str
    severity: Severity
    # Extra attributes for the create-subject fix, e.g. duty head or section
    attributes: Tuple[Tuple[str, str], ...] = ()
    description: str = ""

    @property
    def rule_id(self) -> str:
        return f"{self.duty_type}_{self.key}_MISSING"


@dataclass(frozen=True)
class ClassificationRequirement:
    """
    Ledgers whose name contains one of ``keywords`` belong under
    ``required_classification``.

    When ``offending_groups`` is set, only ledgers currently under one of
    those groups are flagged. Otherwise any ledger whose group does not
    contain one of ``accepted_groups`` is flagged.
    """
    keywords: Tuple[str, ...]
    required_classification: str
    offending_groups: Tuple[str, ...] = ()
    accepted_groups: Tuple[str, ...] = ()
    exempt_groups: Tuple[str, ...] = ()


@dataclass(frozen=True)
class DeductionSection:
    """Withholding-tax section and the expense name keywords it applies to."""
    section: str
    keywords: Tuple[str, ...]
    # Cumulative balance above which the section applies; None means always
    threshold: Optional[Decimal] = None


@dataclass(frozen=True)
class ProfileRequirement:
    """Company profile field: presence and (optionally) format."""
    attribute: str
    label: str
    missing_severity: Severity
    invalid_severity: Severity = Severity.HIGH
    pattern: Optional[str] = None
    guidance: str = ""

    @property
    def key(self) -> str:
        return self.attribute.upper()


GSTIN_PATTERN = r"^[0-9]{2}[A-Z]{5}[0-9]{4}[A-Z]{1}[1-9A-Z]{1}Z[0-9A-Z]{1}$"
PAN_PATTERN = r"^[A-Z]{5}[0-9]{4}[A-Z]{1}$"

_GSTIN_CHARSET = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"


def gstin_checksum_valid(gstin: str) -> bool:
    """Verify the 15th character of a GSTIN (mod-36 check digit)."""
    value = (gstin or "").strip().upper()
    if len(value) != 15 or any(ch not in _GSTIN_CHARSET for ch in value):
        return False

    total = 0
    for position, ch in enumerate(value[:14]):
        product = _GSTIN_CHARSET.index(ch) * (2 if position % 2 else 1)
        total += product // 36 + product % 36
    check = (36 - total % 36) % 36
    return value[14] == _GSTIN_CHARSET[check]


@dataclass(frozen=True)
class RuleCatalog:
    """Immutable rule content for one regulatory regime."""

    name: str = "india-gst-tds"

    # Tax ledgers
    tax_group: str = "Duties & Taxes"
    tax_group_keywords: Tuple[str, ...] = ("duties", "taxes")
    required_tax_ledgers: Tuple[RequiredLedger, ...] = ()
    ambiguous_tax_keyword: str = "gst"
    ambiguous_tax_exemptions: Tuple[str, ...] = ("igst", "cgst", "sgst", "cess")
    tax_group_requirement: Optional[ClassificationRequirement] = None
    # (rule suffix, group keyword) pairs whose ledgers need tax applicability
    tax_applicable_groups: Tuple[Tuple[str, str], ...] = (("SALES", "sales"), ("PURCHASE", "purchase"))

    # Withholding tax
    expense_group_keywords: Tuple[str, ...] = ("expense",)
    deduction_sections: Tuple[DeductionSection, ...] = ()
    creditor_group_keywords: Tuple[str, ...] = ("sundry creditor",)
    debtor_group_keywords: Tuple[str, ...] = ("sundry debtor",)
    creditor_pan_threshold: Decimal = Decimal("30000")

    # Classification
    suspense_group_keywords: Tuple[str, ...] = ("suspense",)
    misclassifications: Tuple[ClassificationRequirement, ...] = ()

    # Identity formats
    profile_requirements: Tuple[ProfileRequirement, ...] = ()
    gstin_pattern: str = GSTIN_PATTERN
    pan_pattern: str = PAN_PATTERN
    verify_gstin_checksum: bool = False

    # Free-text hints keyed by category value, used in recommendations
    recommendation_hints: Mapping[str, str] = field(default_factory=dict)

    def is_valid_gstin(self, gstin: Optional[str]) -> bool:
        value = (gstin or "").strip().upper()
        if len(value) != 15 or not re.match(self.gstin_pattern, value):
            return False
        if self.verify_gstin_checksum:
            return gstin_checksum_valid(value)
        return True

    def is_valid_pan(self, pan: Optional[str]) -> bool:
        value = (pan or "").strip().upper()
        return len(value) == 10 and re.match(self.pan_pattern, value) is not None

    def deduction_section_for(self, ledger_name: str) -> Optional[Tuple[DeductionSection, str]]:
        """First section whose keyword appears in the name, with that keyword."""
        lowered = ledger_name.lower()
        for section in self.deduction_sections:
            for keyword in section.keywords:
                if keyword in lowered:
                    return section, keyword
        return None


def _gst_ledger(key: str, display_name: str, patterns: Tuple[str, ...]) -> RequiredLedger:
    head = "Output" if key.startswith("OUTPUT") else "Input"
    return RequiredLedger(
        key=key,
        display_name=display_name,
        patterns=patterns,
        duty_type="GST",
        severity=Severity.CRITICAL,
        attributes=(("type_of_duty", "GST"), ("gst_duty_head", head)),
        description=f"No {display_name} ledger found. This is required for proper GST accounting.",
    )


def _tds_ledger(section: str, display_name: str, patterns: Tuple[str, ...]) -> RequiredLedger:
    return RequiredLedger(
        key=section,
        display_name=display_name,
        patterns=patterns,
        duty_type="TDS",
        severity=Severity.HIGH,
        attributes=(("type_of_duty", "TDS"), ("tds_section", section)),
        description=(
            f"No TDS ledger for Section {section} found. "
            "Create if you have such transactions."
        ),
    )


def default_catalog() -> RuleCatalog:
    """Catalog for the Indian GST / TDS regime."""
    gst_ledgers = (
        _gst_ledger("OUTPUT_IGST", "Output IGST",
                    ("output igst", "igst payable", "igst output", "igst on sales")),
        _gst_ledger("OUTPUT_CGST", "Output CGST",
                    ("output cgst", "cgst payable", "cgst output", "cgst on sales")),
        _gst_ledger("OUTPUT_SGST", "Output SGST",
                    ("output sgst", "sgst payable", "sgst output", "sgst on sales", "utgst payable")),
        _gst_ledger("INPUT_IGST", "Input IGST",
                    ("input igst", "igst receivable", "igst input", "igst on purchase")),
        _gst_ledger("INPUT_CGST", "Input CGST",
                    ("input cgst", "cgst receivable", "cgst input", "cgst on purchase")),
        _gst_ledger("INPUT_SGST", "Input SGST",
                    ("input sgst", "sgst receivable", "sgst input", "sgst on purchase", "utgst receivable")),
    )

    tds_ledgers = (
        _tds_ledger("194C", "TDS on Contractor (194C)",
                    ("tds 194c", "tds on contractor", "tds contractor", "tds - contractor")),
        _tds_ledger("194J", "TDS on Professional (194J)",
                    ("tds 194j", "tds on professional", "tds professional", "tds - professional", "tds technical")),
        _tds_ledger("194H", "TDS on Commission (194H)",
                    ("tds 194h", "tds on commission", "tds commission", "tds - commission", "tds brokerage")),
        _tds_ledger("194I", "TDS on Rent (194I)",
                    ("tds 194i", "tds on rent", "tds rent", "tds - rent")),
        _tds_ledger("194A", "TDS on Interest (194A)",
                    ("tds 194a", "tds on interest", "tds interest", "tds - interest")),
    )

    deduction_sections = (
        DeductionSection("194C", (
            "contractor", "labour", "job work", "works contract", "sub-contract", "transportation",
            "freight", "cartage", "loading", "unloading", "catering", "housekeeping", "security",
        )),
        DeductionSection("194J", (
            "professional", "consultancy", "legal", "audit", "accounting", "technical", "architect",
            "interior", "doctor", "medical", "engineering", "ca fees", "advocate",
        )),
        DeductionSection("194H", ("commission", "brokerage", "agency")),
        DeductionSection("194I", ("rent", "lease", "hire")),
        DeductionSection("194A", ("interest",)),
    )

    income_groups = ("direct incomes", "sales")
    direct_expenses = ("direct expenses",)
    misclassifications = (
        ClassificationRequirement(("rent received", "rent income"), "Indirect Incomes", income_groups),
        ClassificationRequirement(("interest received", "interest income", "bank interest"),
                                  "Indirect Incomes", income_groups),
        ClassificationRequirement(("discount received",), "Indirect Incomes", income_groups),
        ClassificationRequirement(("salary", "wages", "staff welfare"), "Indirect Expenses", direct_expenses),
        ClassificationRequirement(("depreciation",), "Indirect Expenses", direct_expenses),
        ClassificationRequirement(("bank charges", "bank commission"), "Indirect Expenses", direct_expenses),
        ClassificationRequirement(("electricity", "power", "telephone", "mobile"),
                                  "Indirect Expenses", direct_expenses),
        ClassificationRequirement(("audit fee", "professional fee", "legal fee"),
                                  "Indirect Expenses", direct_expenses),
        ClassificationRequirement(("fixed deposit", "fd", "term deposit"), "Investments",
                                  ("bank accounts", "current assets")),
        ClassificationRequirement(("security deposit", "earnest money", "emd"), "Deposits (Asset)",
                                  ("current assets", "loans")),
    )

    profile_requirements = (
        ProfileRequirement(
            "gstin", "GSTIN", Severity.CRITICAL, Severity.HIGH, GSTIN_PATTERN,
            "Configure GSTIN in Company Alter > Statutory Details",
        ),
        ProfileRequirement(
            "pan", "PAN", Severity.CRITICAL, Severity.HIGH, PAN_PATTERN,
            "Configure PAN in Company Alter > Statutory Details",
        ),
        ProfileRequirement(
            "tan", "TAN", Severity.HIGH,
            guidance="Configure TAN in Company Alter > Statutory Details",
        ),
        ProfileRequirement(
            "state", "State", Severity.HIGH,
            guidance="Configure State in Company Alter",
        ),
    )

    return RuleCatalog(
        required_tax_ledgers=gst_ledgers + tds_ledgers,
        tax_group_requirement=ClassificationRequirement(
            keywords=("igst", "cgst", "sgst"),
            required_classification="Duties & Taxes",
            accepted_groups=("duties",),
            exempt_groups=("sales", "purchase"),
        ),
        deduction_sections=deduction_sections,
        misclassifications=misclassifications,
        profile_requirements=profile_requirements,
        recommendation_hints={
            "GST": "Review and configure all GST ledgers with proper tax type (IGST/CGST/SGST) "
                   "under Duties & Taxes group.",
            "TDS": "Enable TDS on expense ledgers where applicable and create section-wise "
                   "TDS payable ledgers.",
            "Party Master": "Update party masters with GSTIN, PAN, and State information for "
                            "accurate compliance reporting.",
            "Stock Item": "Configure HSN codes and GST rates for all stock items for GSTR-1 HSN summary.",
        },
    )
