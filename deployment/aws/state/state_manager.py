"""
Deployment record ledger.

Persists every Deployment Record as JSON so the current binding of each
environment, and everything it replaced, survives between runs. Records are
never deleted; applying a new artifact only marks the previous record as
superseded.
"""
import json
import logging
import os
import threading
from typing import Any, Dict, List, Optional

from promoter.exceptions import PromotionError
from promoter.models import DeploymentRecord, DeploymentRecordStatus, utc_now

logger = logging.getLogger(__name__)


class StateManager:
    """Append-only ledger of deployment records.

    Environments promoted side by side share one ledger, so every read and
    write goes through a single lock.
    """

    def __init__(self, state_file: str = ".promotion_records.json"):
        self.state_file = state_file
        self._lock = threading.Lock()
        self.state = self._load_state()

    def _load_state(self) -> Dict[str, Any]:
        """Load the ledger from file."""
        if os.path.exists(self.state_file):
            try:
                with open(self.state_file, 'r') as f:
                    state = json.load(f)
            except (json.JSONDecodeError, IOError) as e:
                raise PromotionError(f"Could not read deployment ledger {self.state_file}: {e}") from e
            state.setdefault("records", [])
            return state

        return {
            "created_at": None,
            "last_updated": None,
            "records": [],
        }

    def _save_state(self) -> None:
        """Write the ledger atomically. Caller holds the lock."""
        now = utc_now()
        self.state["created_at"] = self.state.get("created_at") or now
        self.state["last_updated"] = now

        directory = os.path.dirname(os.path.abspath(self.state_file))
        os.makedirs(directory, exist_ok=True)
        tmp_file = f"{self.state_file}.tmp"
        try:
            with open(tmp_file, 'w') as f:
                json.dump(self.state, f, indent=2)
            os.replace(tmp_file, self.state_file)
        except IOError as e:
            logger.error(f"Could not save deployment ledger: {e}")
            raise PromotionError(f"Could not save deployment ledger {self.state_file}: {e}") from e

    def _records(self) -> List[DeploymentRecord]:
        return [DeploymentRecord.from_dict(r) for r in self.state["records"]]

    def _index_of(self, record_id: str) -> int:
        for index, data in enumerate(self.state["records"]):
            if data.get("record_id") == record_id:
                return index
        raise PromotionError(f"Unknown deployment record: {record_id}")

    def record_applied(self, environment: str, image: str, commit_sha: str,
                       task_definition_arn: str,
                       previous_task_definition_arn: Optional[str] = None,
                       rollback_of: Optional[str] = None) -> DeploymentRecord:
        """Record a newly applied task definition and supersede the current record."""
        record = DeploymentRecord(
            environment=environment,
            image=image,
            commit_sha=commit_sha,
            task_definition_arn=task_definition_arn,
            previous_task_definition_arn=previous_task_definition_arn,
            rollback_of=rollback_of,
        )

        with self._lock:
            for data in self.state["records"]:
                if data.get("environment") == environment and data.get("superseded_by") is None:
                    data["superseded_by"] = record.record_id
                    data["updated_at"] = record.created_at
            self.state["records"].append(record.to_dict())
            self._save_state()

        logger.info(f"📦 Recorded deployment {record.record_id[:8]} for {environment}: {image}")
        return record

    def update_status(self, record_id: str, status: DeploymentRecordStatus,
                      reason: Optional[str] = None) -> DeploymentRecord:
        """Advance a record to ``status``."""
        with self._lock:
            data = self.state["records"][self._index_of(record_id)]
            data["status"] = status.value
            data["updated_at"] = utc_now()
            if reason is not None:
                data["reason"] = reason
            self._save_state()
            return DeploymentRecord.from_dict(data)

    def get(self, record_id: str) -> DeploymentRecord:
        with self._lock:
            return DeploymentRecord.from_dict(self.state["records"][self._index_of(record_id)])

    def current(self, environment: str) -> Optional[DeploymentRecord]:
        """The record currently bound to ``environment``, if any."""
        with self._lock:
            for record in reversed(self._records()):
                if record.environment == environment and record.is_current:
                    return record
        return None

    def predecessor(self, record_id: str) -> Optional[DeploymentRecord]:
        """The record that ``record_id`` superseded."""
        with self._lock:
            for record in self._records():
                if record.superseded_by == record_id:
                    return record
        return None

    def history(self, environment: Optional[str] = None) -> List[DeploymentRecord]:
        """Records newest first, optionally for one environment."""
        with self._lock:
            records = self._records()
        if environment:
            records = [r for r in records if r.environment == environment]
        return list(reversed(records))
