"""
Rule framework and rule implementations.
Extensible plugin-style architecture for audit rules.

Rules read regulatory content from a RuleCatalog and never hard-code it.
Each rule belongs to exactly one AuditCategory and declares which snapshot
data sources it needs, so the engine fetches only that data per category.
"""
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, FrozenSet, List, Optional, Sequence

from .catalog import ClassificationRequirement, ProfileRequirement, RequiredLedger, RuleCatalog
from .findings import AuditCategory, FixAction, FixKind, Issue, Severity
from .models import CompanyProfile, LedgerSnapshot, StockItemSnapshot
from .similarity import is_similar, normalize_name

logger = logging.getLogger(__name__)


class DataSource(str, Enum):
    LEDGERS = "ledgers"
    STOCK_ITEMS = "stock_items"
    COMPANY_PROFILE = "company_profile"


@dataclass
class RuleContext:
    """
    Data handed to the rules of one category.

    Only the sources the category's rules declared are populated; the rest
    stay empty.
    """
    category: AuditCategory
    catalog: RuleCatalog
    ledgers: Sequence[LedgerSnapshot] = field(default_factory=tuple)
    stock_items: Sequence[StockItemSnapshot] = field(default_factory=tuple)
    company_profile: Optional[CompanyProfile] = None

    def ledgers_in(self, group_keywords: Sequence[str]) -> List[LedgerSnapshot]:
        """Ledgers whose parent group contains any of the keywords."""
        return [l for l in self.ledgers if contains_any(l.parent_group, group_keywords)]


def contains_any(text: Optional[str], keywords: Sequence[str]) -> bool:
    lowered = (text or "").lower()
    return any(keyword in lowered for keyword in keywords)


def first_keyword(text: Optional[str], keywords: Sequence[str]) -> Optional[str]:
    lowered = (text or "").lower()
    for keyword in keywords:
        if keyword in lowered:
            return keyword
    return None


class Rule(ABC):
    """
    Abstract base class for audit rules.

    Each rule has a unique ID, name, category and evaluation logic.
    Rules are deterministic and produce Issue objects.
    """

    @property
    @abstractmethod
    def rule_id(self) -> str:
        """Unique identifier for this rule."""
        pass

    @property
    @abstractmethod
    def rule_name(self) -> str:
        """Human-readable name for this rule."""
        pass

    @property
    @abstractmethod
    def category(self) -> AuditCategory:
        pass

    @property
    @abstractmethod
    def applies_to(self) -> FrozenSet[DataSource]:
        """Data sources this rule reads."""
        pass

    @abstractmethod
    def evaluate(self, context: RuleContext) -> List[Issue]:
        """Evaluate rule against context and return issues (possibly empty)."""
        pass


# ==================== Company profile ====================

class ProfilePresenceRule(Rule):
    """A company identity field must be configured. Never auto-fixable."""

    def __init__(self, requirement: ProfileRequirement):
        self.requirement = requirement

    @property
    def rule_id(self) -> str:
        return f"COMP_{self.requirement.key}_MISSING"

    @property
    def rule_name(self) -> str:
        return f"{self.requirement.label} Configured"

    @property
    def category(self) -> AuditCategory:
        return AuditCategory.COMPANY_INFO

    @property
    def applies_to(self) -> FrozenSet[DataSource]:
        return frozenset({DataSource.COMPANY_PROFILE})

    def evaluate(self, context: RuleContext) -> List[Issue]:
        profile = context.company_profile
        if profile is None:
            return []
        if getattr(profile, self.requirement.attribute, None):
            return []

        label = self.requirement.label
        return [Issue(
            id=self.rule_id,
            category=self.category,
            severity=self.requirement.missing_severity,
            title=f"{label} Not Configured",
            description=f"Company {label} is not set.",
            suggested_value=self.requirement.guidance or None,
        )]


class ValidityRule(Rule):
    """A configured identity field must match its format. Never auto-fixable."""

    def __init__(self, requirement: ProfileRequirement):
        if not requirement.pattern:
            raise ValueError(f"ValidityRule needs a pattern for {requirement.attribute}")
        self.requirement = requirement

    @property
    def rule_id(self) -> str:
        return f"COMP_{self.requirement.key}_INVALID"

    @property
    def rule_name(self) -> str:
        return f"{self.requirement.label} Format"

    @property
    def category(self) -> AuditCategory:
        return AuditCategory.COMPANY_INFO

    @property
    def applies_to(self) -> FrozenSet[DataSource]:
        return frozenset({DataSource.COMPANY_PROFILE})

    def is_valid(self, value: str, catalog: RuleCatalog) -> bool:
        if self.requirement.attribute == "gstin":
            return catalog.is_valid_gstin(value)
        if self.requirement.attribute == "pan":
            return catalog.is_valid_pan(value)
        return re.match(self.requirement.pattern, value.strip().upper()) is not None

    def evaluate(self, context: RuleContext) -> List[Issue]:
        profile = context.company_profile
        if profile is None:
            return []
        value = getattr(profile, self.requirement.attribute, None)
        if not value or self.is_valid(value, context.catalog):
            return []

        label = self.requirement.label
        return [Issue(
            id=self.rule_id,
            category=self.category,
            severity=self.requirement.invalid_severity,
            title=f"Invalid {label} Format",
            description=f'{label} "{value}" does not match valid format.',
            current_value=value,
            suggested_value=f"Valid {label}",
        )]


# ==================== Tax ledgers ====================

class PresenceRule(Rule):
    """
    A required tax ledger must exist under the tax group.

    Emits at most one issue; the fix creates the ledger.
    """

    def __init__(self, required: RequiredLedger, category: AuditCategory):
        self.required = required
        self._category = category

    @property
    def rule_id(self) -> str:
        return self.required.rule_id

    @property
    def rule_name(self) -> str:
        return f"{self.required.display_name} Present"

    @property
    def category(self) -> AuditCategory:
        return self._category

    @property
    def applies_to(self) -> FrozenSet[DataSource]:
        return frozenset({DataSource.LEDGERS})

    def evaluate(self, context: RuleContext) -> List[Issue]:
        catalog = context.catalog
        for ledger in context.ledgers_in(catalog.tax_group_keywords):
            if contains_any(ledger.name, self.required.patterns):
                return []

        name = self.required.display_name
        changes = {"parent": catalog.tax_group}
        changes.update(dict(self.required.attributes))
        return [Issue(
            id=self.rule_id,
            category=self.category,
            severity=self.required.severity,
            title=f"{name} Ledger Missing",
            description=self.required.description or f"No {name} ledger found.",
            suggested_value=f'Create ledger "{name}" under "{catalog.tax_group}"',
            auto_fixable=True,
            fix_action=FixAction(FixKind.CREATE_SUBJECT, name, changes),
        )]


class AmbiguousTaxLedgerRule(Rule):
    """Tax ledgers named just "GST" without a component (IGST/CGST/SGST)."""

    @property
    def rule_id(self) -> str:
        return "GST_AMBIGUOUS"

    @property
    def rule_name(self) -> str:
        return "Ambiguous GST Ledger Name"

    @property
    def category(self) -> AuditCategory:
        return AuditCategory.GST

    @property
    def applies_to(self) -> FrozenSet[DataSource]:
        return frozenset({DataSource.LEDGERS})

    def evaluate(self, context: RuleContext) -> List[Issue]:
        catalog = context.catalog
        issues = []
        for ledger in context.ledgers_in(catalog.tax_group_keywords):
            if catalog.ambiguous_tax_keyword not in ledger.name.lower():
                continue
            if contains_any(ledger.name, catalog.ambiguous_tax_exemptions):
                continue
            issues.append(Issue(
                id=f"{self.rule_id}_{ledger.name}",
                category=self.category,
                severity=Severity.HIGH,
                title=self.rule_name,
                description=(
                    f'Ledger "{ledger.name}" has ambiguous name. GST ledgers should be '
                    "specific (IGST/CGST/SGST)."
                ),
                current_value=ledger.name,
                suggested_value='Rename to specific GST type (e.g., "Output CGST", "Input IGST")',
                affected_subjects=(ledger.name,),
            ))
        return issues


class ClassificationRule(Rule):
    """
    Ledgers matching a name pattern must live under a given classification.

    Requirements are tried in order; a ledger gets at most one issue, for
    the first requirement it violates. The fix reclassifies the ledger.
    """

    def __init__(
        self,
        rule_prefix: str,
        category: AuditCategory,
        requirements: Sequence[ClassificationRequirement],
        severity: Severity,
        title: str,
    ):
        self.rule_prefix = rule_prefix
        self._category = category
        self.requirements = tuple(requirements)
        self.severity = severity
        self.title = title

    @property
    def rule_id(self) -> str:
        return self.rule_prefix

    @property
    def rule_name(self) -> str:
        return self.title

    @property
    def category(self) -> AuditCategory:
        return self._category

    @property
    def applies_to(self) -> FrozenSet[DataSource]:
        return frozenset({DataSource.LEDGERS})

    @staticmethod
    def violates(ledger: LedgerSnapshot, requirement: ClassificationRequirement) -> Optional[str]:
        """Matching keyword if the ledger sits in the wrong group, else None."""
        keyword = first_keyword(ledger.name, requirement.keywords)
        if keyword is None:
            return None
        if contains_any(ledger.parent_group, requirement.exempt_groups):
            return None
        if requirement.offending_groups:
            misplaced = contains_any(ledger.parent_group, requirement.offending_groups)
        else:
            misplaced = not contains_any(ledger.parent_group, requirement.accepted_groups)
        return keyword if misplaced else None

    def evaluate(self, context: RuleContext) -> List[Issue]:
        issues = []
        for ledger in context.ledgers:
            for requirement in self.requirements:
                keyword = self.violates(ledger, requirement)
                if keyword is None:
                    continue
                target = requirement.required_classification
                issues.append(Issue(
                    id=f"{self.rule_prefix}_{ledger.name}",
                    category=self.category,
                    severity=self.severity,
                    title=self.title,
                    description=(
                        f'Ledger "{ledger.name}" contains "{keyword}" but is under '
                        f'"{ledger.parent_group}" instead of "{target}".'
                    ),
                    current_value=ledger.parent_group,
                    suggested_value=target,
                    affected_subjects=(ledger.name,),
                    auto_fixable=True,
                    fix_action=FixAction(FixKind.RECLASSIFY, ledger.name, {"parent": target}),
                ))
                break
        return issues


# ==================== Attributes ====================

class AttributeRule(Rule):
    """
    Ledgers under a group must have a tri-state flag configured.

    ``None`` means the flag was never set up. Not auto-fixable because the
    right rate and classification code cannot be inferred.
    """

    def __init__(
        self,
        rule_prefix: str,
        category: AuditCategory,
        group_keyword: str,
        attribute: str,
        severity: Severity,
        title: str,
    ):
        self.rule_prefix = rule_prefix
        self._category = category
        self.group_keyword = group_keyword
        self.attribute = attribute
        self.severity = severity
        self.title = title

    @property
    def rule_id(self) -> str:
        return self.rule_prefix

    @property
    def rule_name(self) -> str:
        return self.title

    @property
    def category(self) -> AuditCategory:
        return self._category

    @property
    def applies_to(self) -> FrozenSet[DataSource]:
        return frozenset({DataSource.LEDGERS})

    def subjects(self, context: RuleContext) -> List[LedgerSnapshot]:
        return context.ledgers_in((self.group_keyword,))

    def check(self, ledger: LedgerSnapshot, context: RuleContext) -> Optional[Issue]:
        if getattr(ledger, self.attribute) is not None:
            return None
        return Issue(
            id=f"{self.rule_prefix}_{ledger.name}",
            category=self.category,
            severity=self.severity,
            title=self.title,
            description=f'Ledger "{ledger.name}" does not have {self.attribute} configured.',
            current_value="Not configured",
            suggested_value="Enable and set appropriate rate/classification code",
            affected_subjects=(ledger.name,),
        )

    def evaluate(self, context: RuleContext) -> List[Issue]:
        issues = []
        for ledger in self.subjects(context):
            issue = self.check(ledger, context)
            if issue is not None:
                issues.append(issue)
        return issues


class TaxDeductibleExpenseRule(AttributeRule):
    """
    Expense ledgers that look like a withholding-tax section (by name) must
    have tax deduction enabled once their balance exceeds the section
    threshold. Auto-fixable by enabling the flag with the section.
    """

    def __init__(self, severity: Severity = Severity.HIGH):
        super().__init__(
            rule_prefix="TDS_EXPENSE",
            category=AuditCategory.TDS,
            group_keyword="expense",
            attribute="tds_applicable",
            severity=severity,
            title="TDS Not Enabled on Expense Ledger",
        )

    def subjects(self, context: RuleContext) -> List[LedgerSnapshot]:
        return context.ledgers_in(context.catalog.expense_group_keywords)

    def check(self, ledger: LedgerSnapshot, context: RuleContext) -> Optional[Issue]:
        found = context.catalog.deduction_section_for(ledger.name)
        if found is None:
            return None
        section, keyword = found
        if section.threshold is not None and ledger.abs_balance <= section.threshold:
            return None
        if ledger.tds_applicable is True:
            return None

        return Issue(
            id=f"{self.rule_prefix}_{ledger.name}_{section.section}",
            category=self.category,
            severity=self.severity,
            title=self.title,
            description=(
                f'Expense ledger "{ledger.name}" contains "{keyword}" but TDS is not enabled. '
                f"Section {section.section} may be applicable."
            ),
            current_value="TDS Applicable: No",
            suggested_value=f"Enable TDS with Section {section.section}",
            affected_subjects=(ledger.name,),
            auto_fixable=True,
            fix_action=FixAction(
                FixKind.ENABLE_ATTRIBUTE,
                ledger.name,
                {"tds_applicable": True, "tds_section": section.section},
            ),
        )


# ==================== Master completeness ====================

SubjectFilter = Callable[[object, RuleCatalog], bool]


class CompletenessRule(Rule):
    """
    Master-data completeness check over many subjects.

    Emits one aggregate issue listing every offender in snapshot order.
    Never auto-fixable: party identity and classification codes must come
    from a human.
    """

    def __init__(
        self,
        rule_id: str,
        category: AuditCategory,
        severity: Severity,
        title: str,
        description: str,
        source: DataSource,
        selects: SubjectFilter,
        is_incomplete: SubjectFilter,
        label: Callable[[object], str] = lambda subject: subject.name,
    ):
        self._rule_id = rule_id
        self._category = category
        self.severity = severity
        self.title = title
        self.description = description
        self.source = source
        self.selects = selects
        self.is_incomplete = is_incomplete
        self.label = label

    @property
    def rule_id(self) -> str:
        return self._rule_id

    @property
    def rule_name(self) -> str:
        return self.title

    @property
    def category(self) -> AuditCategory:
        return self._category

    @property
    def applies_to(self) -> FrozenSet[DataSource]:
        return frozenset({self.source})

    def evaluate(self, context: RuleContext) -> List[Issue]:
        subjects = context.ledgers if self.source == DataSource.LEDGERS else context.stock_items
        offenders = [
            self.label(subject)
            for subject in subjects
            if self.selects(subject, context.catalog) and self.is_incomplete(subject, context.catalog)
        ]
        if not offenders:
            return []
        return [Issue(
            id=self.rule_id,
            category=self.category,
            severity=self.severity,
            title=self.title,
            description=self.description.format(count=len(offenders)),
            affected_subjects=tuple(offenders),
        )]


# ==================== Ledger classification ====================

class SuspenseBalanceRule(Rule):
    """Ledgers parked under a suspense group must not carry a balance."""

    @property
    def rule_id(self) -> str:
        return "LEDGER_SUSPENSE"

    @property
    def rule_name(self) -> str:
        return "Ledger Under Suspense with Balance"

    @property
    def category(self) -> AuditCategory:
        return AuditCategory.LEDGER_CLASSIFICATION

    @property
    def applies_to(self) -> FrozenSet[DataSource]:
        return frozenset({DataSource.LEDGERS})

    def evaluate(self, context: RuleContext) -> List[Issue]:
        issues = []
        for ledger in context.ledgers_in(context.catalog.suspense_group_keywords):
            if ledger.closing_balance == 0:
                continue
            issues.append(Issue(
                id=f"{self.rule_id}_{ledger.name}",
                category=self.category,
                severity=Severity.CRITICAL,
                title=self.rule_name,
                description=(
                    f'Ledger "{ledger.name}" is under {ledger.parent_group} with balance '
                    f"{ledger.closing_balance:,.2f}. This needs to be cleared."
                ),
                current_value=f"Balance: {ledger.closing_balance}",
                affected_subjects=(ledger.name,),
            ))
        return issues


class DuplicateRule(Rule):
    """
    Flags groups of ledgers whose names look like duplicates.

    Each ledger joins at most one group; one issue per group, keyed on the
    first name in snapshot order. Never auto-fixable.
    """

    @property
    def rule_id(self) -> str:
        return "LEDGER_DUPLICATE"

    @property
    def rule_name(self) -> str:
        return "Potential Duplicate Ledgers"

    @property
    def category(self) -> AuditCategory:
        return AuditCategory.LEDGER_CLASSIFICATION

    @property
    def applies_to(self) -> FrozenSet[DataSource]:
        return frozenset({DataSource.LEDGERS})

    def find_groups(self, names: Sequence[str]) -> List[List[str]]:
        grouped = set()
        groups = []
        for i, name in enumerate(names):
            if i in grouped:
                continue
            similar = [
                j for j, other in enumerate(names)
                if j != i and j not in grouped and is_similar(name, other)
            ]
            if similar:
                grouped.add(i)
                grouped.update(similar)
                groups.append([name] + [names[j] for j in similar])
        return groups

    def evaluate(self, context: RuleContext) -> List[Issue]:
        names = [ledger.name for ledger in context.ledgers if normalize_name(ledger.name)]
        issues = []
        for group in self.find_groups(names):
            issues.append(Issue(
                id=f"{self.rule_id}_{group[0]}",
                category=self.category,
                severity=Severity.MEDIUM,
                title=self.rule_name,
                description=f"These ledgers have similar names and might be duplicates: {', '.join(group)}",
                affected_subjects=tuple(group),
            ))
        return issues


# ==================== Registry ====================

class RuleRegistry:
    """
    Central registry for audit rules, partitioned by category.

    Adding a new rule:
    1. Create a Rule subclass
    2. Register it here
    3. No other code changes needed
    """

    def __init__(self):
        self._rules: Dict[AuditCategory, List[Rule]] = {category: [] for category in AuditCategory}

    def register(self, rule: Rule):
        """Register a rule under its category."""
        self._rules[rule.category].append(rule)

    def rules_for(self, category: AuditCategory) -> List[Rule]:
        return list(self._rules[category])

    def get_all_rules(self) -> List[Rule]:
        """Get all registered rules in category order."""
        return [rule for category in AuditCategory for rule in self._rules[category]]

    def get_rule(self, rule_id: str) -> Optional[Rule]:
        """Get rule by ID."""
        for rule in self.get_all_rules():
            if rule.rule_id == rule_id:
                return rule
        return None

    def data_sources_for(self, category: AuditCategory) -> FrozenSet[DataSource]:
        sources = set()
        for rule in self._rules[category]:
            sources.update(rule.applies_to)
        return frozenset(sources)

    def evaluate_category(self, category: AuditCategory, context: RuleContext) -> List[Issue]:
        """Evaluate every rule of one category; duplicate issue ids are dropped."""
        issues = []
        seen = set()
        for rule in self._rules[category]:
            for issue in rule.evaluate(context):
                if issue.id in seen:
                    logger.warning(f"[AUDIT] Dropping duplicate issue id {issue.id} from {rule.rule_id}")
                    continue
                seen.add(issue.id)
                issues.append(issue)
        return issues


def _creditor_with_balance(ledger, catalog: RuleCatalog) -> bool:
    return (
        contains_any(ledger.parent_group, catalog.creditor_group_keywords)
        and ledger.abs_balance > catalog.creditor_pan_threshold
    )


def _party_with_balance(group_keywords_attr: str) -> SubjectFilter:
    def selects(ledger, catalog: RuleCatalog) -> bool:
        keywords = getattr(catalog, group_keywords_attr)
        return contains_any(ledger.parent_group, keywords) and ledger.abs_balance > 0
    return selects


def _unregistered(ledger, catalog: RuleCatalog) -> bool:
    return not ledger.gstin and not ledger.gst_registration_type


def build_default_registry(catalog: RuleCatalog) -> RuleRegistry:
    """Register the standard rule set for a catalog, category by category."""
    registry = RuleRegistry()

    # Company profile
    for requirement in catalog.profile_requirements:
        registry.register(ProfilePresenceRule(requirement))
        if requirement.pattern:
            registry.register(ValidityRule(requirement))

    # GST
    for required in catalog.required_tax_ledgers:
        if required.duty_type == "GST":
            registry.register(PresenceRule(required, AuditCategory.GST))
    registry.register(AmbiguousTaxLedgerRule())
    if catalog.tax_group_requirement is not None:
        registry.register(ClassificationRule(
            "GST_WRONG_GROUP", AuditCategory.GST, (catalog.tax_group_requirement,),
            Severity.HIGH, "GST Ledger Under Wrong Group",
        ))
    for suffix, group_keyword in catalog.tax_applicable_groups:
        registry.register(AttributeRule(
            f"GST_{suffix}", AuditCategory.GST, group_keyword, "gst_applicable",
            Severity.MEDIUM, f"{suffix.title()} Ledger Without GST Configuration",
        ))

    # TDS
    for required in catalog.required_tax_ledgers:
        if required.duty_type == "TDS":
            registry.register(PresenceRule(required, AuditCategory.TDS))
    registry.register(TaxDeductibleExpenseRule())
    registry.register(CompletenessRule(
        "TDS_CREDITORS_NO_PAN", AuditCategory.TDS, Severity.HIGH,
        "Creditors Without PAN",
        "{count} creditors with balance above "
        f"{catalog.creditor_pan_threshold:,} do not have PAN. TDS at higher rate will apply.",
        DataSource.LEDGERS, _creditor_with_balance,
        lambda ledger, _: not ledger.pan,
    ))
    registry.register(CompletenessRule(
        "TDS_CREDITORS_NO_TYPE", AuditCategory.TDS, Severity.MEDIUM,
        "Creditors Without TDS Deductee Type",
        "{count} creditors do not have TDS deductee type configured.",
        DataSource.LEDGERS, _creditor_with_balance,
        lambda ledger, _: not ledger.tds_deductee_type,
    ))

    # Ledger classification
    registry.register(SuspenseBalanceRule())
    registry.register(ClassificationRule(
        "LEDGER_MISCLASS", AuditCategory.LEDGER_CLASSIFICATION, catalog.misclassifications,
        Severity.MEDIUM, "Potential Misclassification",
    ))
    registry.register(DuplicateRule())

    # Party masters
    debtors = _party_with_balance("debtor_group_keywords")
    creditors = _party_with_balance("creditor_group_keywords")
    registry.register(CompletenessRule(
        "PARTY_DEBTORS_NO_GSTIN", AuditCategory.PARTY_MASTER, Severity.HIGH,
        "Debtors Without GSTIN/Registration Type",
        "{count} debtors with outstanding balance do not have GSTIN or GST registration type configured.",
        DataSource.LEDGERS, debtors, _unregistered,
    ))
    registry.register(CompletenessRule(
        "PARTY_DEBTORS_NO_STATE", AuditCategory.PARTY_MASTER, Severity.MEDIUM,
        "Debtors Without State",
        "{count} debtors do not have state configured. This affects place of supply in GST.",
        DataSource.LEDGERS, debtors,
        lambda ledger, _: not ledger.state,
    ))
    registry.register(CompletenessRule(
        "PARTY_CREDITORS_NO_GSTIN", AuditCategory.PARTY_MASTER, Severity.HIGH,
        "Creditors Without GSTIN/Registration Type",
        "{count} creditors with outstanding balance do not have GSTIN configured. ITC may be affected.",
        DataSource.LEDGERS, creditors, _unregistered,
    ))
    registry.register(CompletenessRule(
        "PARTY_CREDITORS_INVALID_GSTIN", AuditCategory.PARTY_MASTER, Severity.CRITICAL,
        "Creditors With Invalid GSTIN",
        "{count} creditors have invalid GSTIN format. ITC will be rejected in reconciliation.",
        DataSource.LEDGERS, creditors,
        lambda ledger, cat: bool(ledger.gstin) and not cat.is_valid_gstin(ledger.gstin),
        label=lambda ledger: f"{ledger.name} ({ledger.gstin})",
    ))

    # Stock items
    registry.register(CompletenessRule(
        "STOCK_NO_HSN", AuditCategory.STOCK_ITEM, Severity.HIGH,
        "Stock Items Without HSN Code",
        "{count} stock items do not have HSN code. This is mandatory for GST invoices and returns.",
        DataSource.STOCK_ITEMS, lambda item, _: True,
        lambda item, _: not item.classification_code,
    ))
    registry.register(CompletenessRule(
        "STOCK_NO_GST_RATE", AuditCategory.STOCK_ITEM, Severity.HIGH,
        "Stock Items Without GST Rate",
        "{count} stock items do not have GST rate configured.",
        DataSource.STOCK_ITEMS, lambda item, _: True,
        lambda item, _: item.tax_rate is None,
    ))
    registry.register(CompletenessRule(
        "STOCK_NO_UNIT", AuditCategory.STOCK_ITEM, Severity.MEDIUM,
        "Stock Items Without Unit of Measure",
        "{count} stock items do not have unit of measure. This affects HSN summary in GSTR-1.",
        DataSource.STOCK_ITEMS, lambda item, _: True,
        lambda item, _: not item.unit_of_measure,
    ))

    return registry
