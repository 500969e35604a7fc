"""
Manual rollback of an environment.

Rolling back re-applies the task definition of an earlier deployment record
and records the result as a new record with ``rollback_of`` set. Nothing in
the promotion chain calls this automatically.
"""
import logging
from typing import Any, Dict, Optional

from promoter.config.promotion import PromotionConfig
from promoter.exceptions import DeploymentError, PromotionError, RollbackError, StabilizationError
from promoter.models import DeploymentRecord, DeploymentRecordStatus

from ..infrastructure.ecs_services import ECSServiceDeployer
from .state_manager import StateManager

logger = logging.getLogger(__name__)


class RollbackManager:
    """Manages rollback operations for promoted environments."""

    def __init__(self, config: PromotionConfig, state_manager: StateManager,
                 deployer: ECSServiceDeployer):
        self.config = config
        self.state_manager = state_manager
        self.deployer = deployer

    def _target(self, environment: str, record_id: Optional[str]) -> DeploymentRecord:
        current = self.state_manager.current(environment)

        if record_id:
            try:
                target = self.state_manager.get(record_id)
            except PromotionError as e:
                raise RollbackError(e.message, environment) from e
            if target.environment != environment:
                raise RollbackError(
                    f"Record {record_id} belongs to {target.environment}", environment)
            if current and target.record_id == current.record_id:
                raise RollbackError(f"Record {record_id} is already current", environment)
            return target

        if current is None:
            raise RollbackError("No deployment recorded", environment)
        target = self._default_target(current)
        if target is None:
            raise RollbackError(
                f"Current record {current.record_id} has no earlier record to return to", environment)
        return target

    def _default_target(self, current: DeploymentRecord) -> Optional[DeploymentRecord]:
        """Walk back from ``current`` to the newest record worth returning to.

        Failed records are skipped, as is any record a rollback already moved
        away from. A record bound to the running task definition is no target.
        """
        successor = current
        candidate = self.state_manager.predecessor(current.record_id)
        while candidate is not None:
            rolled_back_from = successor.rollback_of is not None
            if (candidate.status != DeploymentRecordStatus.FAILED.value
                    and not rolled_back_from
                    and candidate.task_definition_arn != current.task_definition_arn):
                return candidate
            successor = candidate
            candidate = self.state_manager.predecessor(candidate.record_id)
        return None

    def can_rollback(self, environment: str) -> bool:
        """Check if rollback is possible."""
        try:
            self._target(environment, None)
        except RollbackError:
            return False
        return True

    def create_rollback_plan(self, environment: str, record_id: Optional[str] = None) -> Dict[str, Any]:
        """Describe what a rollback of ``environment`` would apply."""
        env = self.config.environment(environment)
        target = self._target(environment, record_id)
        current = self.state_manager.current(environment)
        return {
            "environment": environment,
            "cluster": env.cluster,
            "service": env.service,
            "current_record": current.record_id if current else None,
            "current_task_definition": current.task_definition_arn if current else None,
            "target_record": target.record_id,
            "target_task_definition": target.task_definition_arn,
            "target_image": target.image,
        }

    def execute_rollback(self, environment: str, record_id: Optional[str] = None,
                         dry_run: bool = True) -> Dict[str, Any]:
        """Re-apply an earlier record's task definition.

        Raises:
            RollbackError: no target record, or the service did not accept or
                stabilize on the earlier task definition.
        """
        plan = self.create_rollback_plan(environment, record_id)
        results = {"dry_run": dry_run, "plan": plan, "record": None}
        if dry_run:
            logger.info(
                f"Dry run: would roll {environment} back to {plan['target_task_definition']}")
            return results

        env = self.config.environment(environment)
        target = self.state_manager.get(plan["target_record"])
        logger.info(f"⏪ Rolling {environment} back to {target.image} ({target.task_definition_arn})")

        record = None
        try:
            previous = self.deployer.current_task_definition(env.cluster, env.service)
            self.deployer.apply(env.cluster, env.service, target.task_definition_arn)
            record = self.state_manager.record_applied(
                environment=environment,
                image=target.image,
                commit_sha=target.commit_sha,
                task_definition_arn=target.task_definition_arn,
                previous_task_definition_arn=previous,
                rollback_of=target.record_id,
            )
            self.deployer.wait_for_stability(
                env.cluster, env.service, target.task_definition_arn,
                timeout=self.config.stabilization_timeout,
                poll_interval=self.config.stabilization_poll_interval,
            )
        except (DeploymentError, StabilizationError) as e:
            if record is not None:
                self.state_manager.update_status(record.record_id, DeploymentRecordStatus.FAILED, e.message)
            raise RollbackError(f"Rollback failed: {e.message}", environment) from e

        record = self.state_manager.update_status(record.record_id, DeploymentRecordStatus.STABLE)
        logger.info(f"✅ {environment} rolled back to {target.image}")
        results["record"] = record
        return results
