"""
Centralized configuration for the Ledger Audit application.
Tolerances, scoring weights and workbook detection rules are defined here.

Rule content (naming patterns, thresholds, required ledgers) is NOT part of
this module; it lives in ledger_audit.catalog and is passed explicitly.
"""
from dataclasses import dataclass, field
from decimal import Decimal
from pathlib import Path
from typing import Dict, List, Optional
import os


@dataclass
class ColumnMapping:
    """Maps required columns for a workbook sheet."""
    required_columns: List[str]
    optional_columns: List[str] = field(default_factory=list)

    def validate(self, columns: List[str]) -> tuple[bool, List[str]]:
        """Check if all required columns are present."""
        missing = [col for col in self.required_columns if col not in columns]
        return len(missing) == 0, missing


@dataclass
class DataSourceConfig:
    """Configuration for one workbook sheet."""
    name: str
    column_mapping: ColumnMapping
    detection_keywords: List[str]  # For sheet name detection


@dataclass
class ReconciliationConfig:
    """Tolerances for the fuzzy matching phase."""
    date_tolerance_days: int = field(
        default_factory=lambda: int(os.getenv('RECON_DATE_TOLERANCE_DAYS', '7'))
    )
    # Rs. 1.00
    amount_tolerance: Decimal = field(
        default_factory=lambda: Decimal(os.getenv('RECON_AMOUNT_TOLERANCE', '1.00'))
    )


def _default_category_weights() -> Dict[str, int]:
    return {"Critical": 20, "High": 10, "Medium": 5, "Low": 2}


def _default_overall_weights() -> Dict[str, int]:
    return {"Critical": 15, "High": 8, "Medium": 3, "Low": 1}


@dataclass
class ScoringConfig:
    """
    Score deductions per severity.

    Category and overall weights are tuned independently and must stay
    separate tables.
    """
    category_weights: Dict[str, int] = field(default_factory=_default_category_weights)
    overall_weights: Dict[str, int] = field(default_factory=_default_overall_weights)
    good_threshold: int = 80
    attention_threshold: int = 50

    def status_for(self, score: Optional[int]) -> str:
        if score is None:
            return "Unknown"
        if score >= self.good_threshold:
            return "Good"
        if score >= self.attention_threshold:
            return "Needs Attention"
        return "Critical"


@dataclass
class AgingConfig:
    """Aging and stale-instrument settings."""
    stale_threshold_days: int = field(
        default_factory=lambda: int(os.getenv('AGING_STALE_THRESHOLD_DAYS', '180'))
    )


@dataclass
class EngineConfig:
    """Audit run execution settings."""
    parallel: bool = field(
        default_factory=lambda: os.getenv('AUDIT_PARALLEL', 'true').lower() == 'true'
    )
    max_workers: int = field(default_factory=lambda: int(os.getenv('AUDIT_MAX_WORKERS', '6')))
    # Affected subjects shown per issue in reports; counts are never truncated
    display_limit: int = 15


@dataclass
class StorageConfig:
    """Configuration for run persistence."""
    base_dir: Path = field(
        default_factory=lambda: Path(os.getenv('LEDGER_AUDIT_RUNS_DIR', 'instance/runs'))
    )
    outputs_dir: str = "outputs"
    meta_file: str = "run_meta.json"
    fix_queue_file: str = "fix_queue.json"


@dataclass
class WorkbookConfig:
    """Sheet detection for snapshot workbooks exported from the ERP."""
    ledgers: DataSourceConfig = field(default_factory=lambda: DataSourceConfig(
        name="ledgers",
        column_mapping=ColumnMapping(
            required_columns=["NAME", "PARENT", "CLOSINGBALANCE"],
            optional_columns=[
                "OPENINGBALANCE", "PARTYGSTIN", "GSTREGISTRATIONTYPE", "INCOMETAXNUMBER",
                "TDSDEDUCTEETYPE", "LEDGERSTATENAME", "GSTAPPLICABLE", "ISTDSAPPLICABLE",
            ],
        ),
        detection_keywords=["ledger"],
    ))

    stock_items: DataSourceConfig = field(default_factory=lambda: DataSourceConfig(
        name="stock_items",
        column_mapping=ColumnMapping(
            required_columns=["NAME", "BASEUNITS"],
            optional_columns=[
                "HSNCODE", "GSTRATE", "OPENINGBALANCE", "CLOSINGBALANCE",
                "OPENINGVALUE", "CLOSINGVALUE",
            ],
        ),
        detection_keywords=["stock", "item"],
    ))

    company: DataSourceConfig = field(default_factory=lambda: DataSourceConfig(
        name="company",
        column_mapping=ColumnMapping(
            required_columns=["NAME", "STATENAME"],
            optional_columns=["GSTIN", "INCOMETAXNUMBER", "TANNUMBER"],
        ),
        detection_keywords=["company"],
    ))

    transactions: DataSourceConfig = field(default_factory=lambda: DataSourceConfig(
        name="transactions",
        column_mapping=ColumnMapping(
            required_columns=["DATE", "VOUCHERNUMBER", "PARTYLEDGERNAME", "AMOUNT"],
            optional_columns=[
                "INSTRUMENTNUMBER", "VOUCHERTYPENAME", "GUID", "NARRATION", "BANKDATE",
            ],
        ),
        detection_keywords=["voucher", "transaction", "book"],
    ))

    statement: DataSourceConfig = field(default_factory=lambda: DataSourceConfig(
        name="statement",
        column_mapping=ColumnMapping(
            required_columns=["DATE", "VOUCHERNUMBER", "PARTYLEDGERNAME", "AMOUNT"],
            optional_columns=["INSTRUMENTNUMBER", "NARRATION", "GUID"],
        ),
        detection_keywords=["statement", "return", "gstr"],
    ))


@dataclass
class AuditConfig:
    """Main configuration container."""
    reconciliation: ReconciliationConfig = field(default_factory=ReconciliationConfig)
    scoring: ScoringConfig = field(default_factory=ScoringConfig)
    aging: AgingConfig = field(default_factory=AgingConfig)
    engine: EngineConfig = field(default_factory=EngineConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    workbook: WorkbookConfig = field(default_factory=WorkbookConfig)


# Global configuration instance
config = AuditConfig()
