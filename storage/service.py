"""
Storage service for audit run persistence on the local filesystem.
"""
import json
import hashlib
import logging
import math
import shutil
import threading
from pathlib import Path
from typing import Dict, Any, List, Mapping, Optional
from datetime import datetime
from decimal import Decimal

import pandas as pd

from config import StorageConfig
from ledger_audit.engine import AuditReport
from ledger_audit.errors import MutationFailed
from ledger_audit.findings import Issue
from ledger_audit.fixes import MutationSink

logger = logging.getLogger(__name__)


class StorageService:
    """
    Manage audit run persistence.

    Structure:
    instance/runs/<run_id>/
        <uploaded workbook> (optional)
        outputs/
            issues.csv
            match_results.csv (optional)
        report.json
        run_meta.json
        fix_queue.json (created by FixQueueSink)
    """

    REPORT_FILE = "report.json"
    ISSUES_FILE = "issues.csv"
    MATCH_RESULTS_FILE = "match_results.csv"

    def __init__(self, base_dir: Optional[Path] = None, storage_config: Optional[StorageConfig] = None):
        self.storage_config = storage_config or StorageConfig()
        self.base_dir = Path(base_dir) if base_dir is not None else Path(self.storage_config.base_dir)
        self.base_dir.mkdir(parents=True, exist_ok=True)
        self._queue_lock = threading.Lock()
        logger.info(f"[STORAGE] Using local filesystem: {self.base_dir}")

    def _normalize_for_json(self, value: Any) -> Any:
        """Normalize pandas/Decimal values into JSON-serializable primitives."""
        if value is None:
            return None

        if isinstance(value, pd.Timestamp):
            return value.strftime('%Y-%m-%d')

        if isinstance(value, datetime):
            return value.isoformat()

        if isinstance(value, Decimal):
            return float(value)

        if isinstance(value, float):
            if math.isnan(value) or math.isinf(value):
                return None
            return value

        if isinstance(value, dict):
            return {str(k): self._normalize_for_json(v) for k, v in value.items()}

        if isinstance(value, (list, tuple)):
            return [self._normalize_for_json(v) for v in value]

        if isinstance(value, (int, str, bool)):
            return value

        return str(value)

    def _run_path(self, run_id: str, file_path: str = "") -> Path:
        # Run ids come from URLs; keep them inside base_dir
        if not run_id or "/" in run_id or "\\" in run_id or run_id.startswith("."):
            raise ValueError(f"Invalid run id: {run_id!r}")
        path = self.base_dir / run_id
        return path / file_path if file_path else path

    def create_run_dir(self, run_id: str) -> Path:
        """Create directory structure for a new run."""
        run_dir = self._run_path(run_id)
        run_dir.mkdir(parents=True, exist_ok=True)
        (run_dir / self.storage_config.outputs_dir).mkdir(exist_ok=True)
        return run_dir

    def _save_dataframe(self, df: pd.DataFrame, run_id: str, file_path: str):
        df.to_csv(self._run_path(run_id, file_path), index=False)

    def _load_dataframe(self, run_id: str, file_path: str) -> Optional[pd.DataFrame]:
        local_path = self._run_path(run_id, file_path)
        if local_path.exists():
            return pd.read_csv(local_path)
        return None

    def _save_json(self, data: Any, run_id: str, file_path: str):
        local_path = self._run_path(run_id, file_path)
        with open(local_path, "w") as f:
            json.dump(self._normalize_for_json(data), f, indent=2, default=str)

    def _load_json(self, run_id: str, file_path: str) -> Optional[Any]:
        local_path = self._run_path(run_id, file_path)
        if local_path.exists():
            with open(local_path, "r") as f:
                return json.load(f)
        return None

    def save_uploaded_file(self, run_id: str, file_path: Path) -> Path:
        """Keep the original uploaded workbook alongside the run outputs."""
        target = self._run_path(run_id, file_path.name)
        if Path(file_path).resolve() != target.resolve():
            shutil.copyfile(file_path, target)
            logger.info(f"[STORAGE] Copied uploaded file into run {run_id}: {file_path.name}")
        else:
            logger.debug(f"[STORAGE] Original file already saved: {file_path.name}")
        return target

    def save_run(
        self,
        run_id: str,
        report: AuditReport,
        metadata: Dict[str, Any],
        match_results: Optional[pd.DataFrame] = None,
        original_file_path: Optional[Path] = None
    ):
        """Save a complete audit run."""
        logger.info(f"[STORAGE] Starting save for run: {run_id}")
        self.create_run_dir(run_id)
        outputs = self.storage_config.outputs_dir

        files_saved = []

        if original_file_path and Path(original_file_path).exists():
            self.save_uploaded_file(run_id, Path(original_file_path))
            files_saved.append(Path(original_file_path).name)

        self._save_dataframe(report.issues_frame(run_id), run_id, f"{outputs}/{self.ISSUES_FILE}")
        files_saved.append(self.ISSUES_FILE)

        if match_results is not None and len(match_results) > 0:
            self._save_dataframe(match_results, run_id, f"{outputs}/{self.MATCH_RESULTS_FILE}")
            files_saved.append(self.MATCH_RESULTS_FILE)

        # Full subject lists are kept; truncation happens at display time
        self._save_json(report.to_dict(), run_id, self.REPORT_FILE)
        files_saved.append(self.REPORT_FILE)

        self._save_json(metadata, run_id, self.storage_config.meta_file)
        files_saved.append(self.storage_config.meta_file)

        logger.info(f"[STORAGE] Successfully saved run {run_id} - {len(files_saved)} files")
        logger.info(f"[STORAGE] Location: {self.base_dir}/{run_id}")

    def load_report(self, run_id: str) -> Dict[str, Any]:
        """Load the stored report dictionary."""
        report = self._load_json(run_id, self.REPORT_FILE)
        if report is None:
            raise ValueError(f"Run {run_id} not found or incomplete")
        return report

    def load_issues(self, run_id: str) -> List[Issue]:
        """Rebuild the run's issues in report order."""
        report = self.load_report(run_id)
        return [
            Issue.from_dict(issue)
            for category in report.get("categories", [])
            for issue in category.get("issues", [])
        ]

    def load_run(self, run_id: str) -> Dict[str, Any]:
        """Load complete audit run from storage."""
        outputs = self.storage_config.outputs_dir
        report = self.load_report(run_id)
        issues = self._load_dataframe(run_id, f"{outputs}/{self.ISSUES_FILE}")
        if issues is None:
            raise ValueError(f"Run {run_id} not found or incomplete")

        return {
            "report": report,
            "issues": issues,
            "match_results": self._load_dataframe(run_id, f"{outputs}/{self.MATCH_RESULTS_FILE}"),
            "metadata": self.load_metadata(run_id),
            "fix_queue": self.load_fix_queue(run_id),
        }

    def load_metadata(self, run_id: str) -> Dict[str, Any]:
        """Load run metadata."""
        metadata = self._load_json(run_id, self.storage_config.meta_file)
        if metadata is None:
            raise ValueError(f"Metadata not found for run {run_id}")
        return metadata

    def list_runs(self, limit: int = 10) -> List[Dict[str, Any]]:
        """List recent audit runs, newest first."""
        runs = []
        if not self.base_dir.exists():
            return runs

        for run_dir in sorted(self.base_dir.iterdir(), reverse=True):
            if run_dir.is_dir():
                meta_path = run_dir / self.storage_config.meta_file
                if meta_path.exists():
                    with open(meta_path, "r") as f:
                        meta = json.load(f)
                        meta["run_id"] = run_dir.name
                        runs.append(meta)

                if len(runs) >= limit:
                    break

        return runs

    def get_run_exists(self, run_id: str) -> bool:
        """Check if run exists."""
        try:
            return self._run_path(run_id, self.storage_config.meta_file).exists()
        except ValueError:
            return False

    def load_fix_queue(self, run_id: str) -> List[Dict[str, Any]]:
        return self._load_json(run_id, self.storage_config.fix_queue_file) or []

    def append_fix_queue(self, run_id: str, entry: Mapping[str, Any]) -> int:
        """Append one queued action; returns the queue length."""
        if not self.get_run_exists(run_id):
            raise ValueError(f"Run {run_id} not found")
        with self._queue_lock:
            queue = self.load_fix_queue(run_id)
            queue.append(dict(entry))
            self._save_json(queue, run_id, self.storage_config.fix_queue_file)
        return len(queue)

    @staticmethod
    def calculate_file_hash(file_path: Path) -> str:
        """Calculate SHA256 hash of file."""
        sha256_hash = hashlib.sha256()
        with open(file_path, "rb") as f:
            for byte_block in iter(lambda: f.read(4096), b""):
                sha256_hash.update(byte_block)
        return sha256_hash.hexdigest()

    @staticmethod
    def generate_run_id() -> str:
        """Generate unique run ID."""
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S_%f")
        return f"run_{timestamp}"

    def create_metadata(
        self,
        run_id: str,
        file_path: Optional[Path] = None,
        catalog_name: str = "",
        config_version: str = "v1"
    ) -> Dict[str, Any]:
        """Create run metadata."""
        metadata = {
            "run_id": run_id,
            "timestamp": datetime.now().isoformat(),
            "config_version": config_version,
            "catalog": catalog_name,
            "source": "workbook" if file_path else "snapshot",
        }
        if file_path is not None:
            metadata.update({
                "file_name": file_path.name,
                "file_hash": self.calculate_file_hash(file_path),
                "file_size": file_path.stat().st_size,
            })
        return metadata


class FixQueueSink(MutationSink):
    """
    Mutation sink that queues actions in the run's fix_queue.json for a
    downstream ERP importer instead of writing to the ERP directly.
    """

    def __init__(self, storage: StorageService, run_id: str):
        self.storage = storage
        self.run_id = run_id

    def _queue(self, action: str, subject: str, **details) -> None:
        entry = {
            "action": action,
            "subject": subject,
            "queued_at": datetime.now().isoformat(),
        }
        entry.update(details)
        try:
            position = self.storage.append_fix_queue(self.run_id, entry)
        except (OSError, ValueError) as e:
            raise MutationFailed(subject, f"could not queue {action}: {e}", cause=e) from e
        logger.info(f"[STORAGE] Queued {action} on '{subject}' for run {self.run_id} (#{position})")

    def create_subject(self, name: str, attributes: Mapping[str, Any]) -> None:
        self._queue("create_subject", name, attributes=dict(attributes))

    def reclassify(self, subject: str, new_classification: str) -> None:
        self._queue("reclassify", subject, new_classification=new_classification)

    def set_attribute(self, subject: str, attribute: str, value: Any) -> None:
        self._queue("set_attribute", subject, attribute=attribute, value=value)

    def rename(self, subject: str, new_name: str) -> None:
        self._queue("rename", subject, new_name=new_name)
