"""ECS service updates, stability waits and replica counts."""
import logging
import time
from typing import Any, Callable, Dict, List, Optional

from botocore.exceptions import ClientError

from promoter.exceptions import DeploymentError, StabilizationError
from promoter.models import ReplicaCounts

logger = logging.getLogger(__name__)


class ECSServiceDeployer:
    """Apply task definitions to an ECS service and wait for the rollout."""

    def __init__(self, ecs_client,
                 sleep: Callable[[float], None] = time.sleep,
                 clock: Callable[[], float] = time.monotonic):
        self.ecs_client = ecs_client
        self.sleep = sleep
        self.clock = clock

    def describe_service(self, cluster: str, service: str) -> Dict[str, Any]:
        """Return the ACTIVE service description."""
        try:
            response = self.ecs_client.describe_services(cluster=cluster, services=[service])
        except ClientError as e:
            raise DeploymentError(f"Could not describe service {service} in {cluster}: {e}") from e

        for svc in response.get('services', []):
            if svc.get('status') == 'ACTIVE':
                return svc

        failures = response.get('failures', [])
        reason = failures[0].get('reason') if failures else 'not ACTIVE'
        raise DeploymentError(f"Service {service} in {cluster} unavailable: {reason}")

    def current_task_definition(self, cluster: str, service: str) -> Optional[str]:
        """ARN of the task definition the service currently runs."""
        return self.describe_service(cluster, service).get('taskDefinition')

    def apply(self, cluster: str, service: str, task_definition_arn: str) -> None:
        """Point the service at ``task_definition_arn``."""
        try:
            self.ecs_client.update_service(
                cluster=cluster,
                service=service,
                taskDefinition=task_definition_arn,
            )
        except ClientError as e:
            raise DeploymentError(
                f"Failed to update service {service} in {cluster}: {e}") from e
        logger.info(f"Updated service {service} ({cluster}) to {task_definition_arn}")

    def replica_counts(self, cluster: str, service: str) -> ReplicaCounts:
        """Running and desired task counts as ECS reports them."""
        svc = self.describe_service(cluster, service)
        return ReplicaCounts(
            running=int(svc.get('runningCount', 0)),
            desired=int(svc.get('desiredCount', 0)),
            pending=int(svc.get('pendingCount', 0)),
        )

    def deployments(self, cluster: str, service: str) -> List[Dict[str, Any]]:
        """Condensed view of the service's deployments for logging."""
        svc = self.describe_service(cluster, service)
        return [
            {
                'status': d.get('status'),
                'taskDefinition': d.get('taskDefinition'),
                'rolloutState': d.get('rolloutState'),
                'running': d.get('runningCount'),
                'desired': d.get('desiredCount'),
            }
            for d in svc.get('deployments', [])
        ]

    @staticmethod
    def _rollout_state(svc: Dict[str, Any], task_definition_arn: str) -> str:
        """Classify the service as 'stable', 'failed' or 'in_progress'."""
        deployments = svc.get('deployments', [])
        primary = next((d for d in deployments if d.get('status') == 'PRIMARY'), None)
        if primary is None:
            return 'in_progress'

        if primary.get('rolloutState') == 'FAILED':
            return 'failed'

        if primary.get('taskDefinition') != task_definition_arn:
            # Another revision replaced ours
            return 'superseded'

        if len(deployments) != 1:
            # Old tasks still draining
            return 'in_progress'

        rollout = primary.get('rolloutState')
        if rollout is not None and rollout != 'COMPLETED':
            return 'in_progress'

        if svc.get('runningCount') != svc.get('desiredCount'):
            return 'in_progress'
        return 'stable'

    def wait_for_stability(self, cluster: str, service: str, task_definition_arn: str,
                           timeout: float, poll_interval: float = 15.0) -> None:
        """Block until the service runs only ``task_definition_arn``.

        Raises:
            StabilizationError: rollout failed, was superseded, or ``timeout``
                seconds passed without the service becoming stable.
        """
        logger.info(f"⏳ Waiting for service stability: {service} ({cluster})")
        deadline = self.clock() + timeout

        while True:
            svc = self.describe_service(cluster, service)
            state = self._rollout_state(svc, task_definition_arn)

            if state == 'stable':
                logger.info(f"✅ Service stable: {service} running {svc.get('runningCount')} task(s)")
                return

            if state == 'failed':
                primary = next(d for d in svc['deployments'] if d.get('status') == 'PRIMARY')
                reason = primary.get('rolloutStateReason', 'rollout failed')
                logger.error(f"❌ Rollout failed for {service}: {reason}")
                raise StabilizationError(f"Rollout of {task_definition_arn} failed: {reason}")

            if state == 'superseded':
                raise StabilizationError(
                    f"Service {service} moved to another task definition while waiting "
                    f"for {task_definition_arn}")

            remaining = deadline - self.clock()
            if remaining <= 0:
                logger.error(f"❌ Service {service} did not stabilize within {timeout:.0f}s")
                raise StabilizationError(
                    f"Service {service} did not stabilize within {timeout:.0f}s")

            logger.info(
                f"⏳ Rollout in progress: {svc.get('runningCount')}/{svc.get('desiredCount')} "
                f"running, {len(svc.get('deployments', []))} deployment(s) - waiting...")
            self.sleep(min(poll_interval, remaining))
