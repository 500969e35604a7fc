"""
Promotion of one artifact through the environment chain.

The build stage produces a single artifact. Every environment stage then
applies that artifact to its ECS service, waits for the rollout to settle and
validates the public endpoint. Stages hand back StageResult values; the
orchestrator never looks at exceptions or exit codes to sequence the chain.

Environments start only after all of their upstream environments succeeded.
Independent environments run side by side on a bounded thread pool. After the
first fatal failure nothing new is started, while stages already running are
allowed to finish.
"""
import logging
import time
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from typing import Dict, List, Optional, Tuple

import requests

from promoter.config.promotion import EnvironmentConfig, PromotionConfig
from promoter.exceptions import HealthCheckError, PromotionError
from promoter.models import (
    Artifact,
    DeploymentRecordStatus,
    HealthVerdict,
    PromotionResult,
    StageResult,
)

from ..infrastructure.ecr_images import ImagePublisher
from ..infrastructure.ecs_services import ECSServiceDeployer
from ..infrastructure.ecs_task_definitions import TaskDefinitionRenderer
from ..infrastructure.load_balancers import LoadBalancerLocator
from ..monitoring import summary_report
from ..monitoring.health_validator import HealthValidator
from ..state.state_manager import StateManager
from ..utils.aws_clients import AWSClientManager

logger = logging.getLogger(__name__)

BUILD_STAGE = "build"


class EnvironmentPromoter:
    """Apply, stabilize and validate one environment."""

    def __init__(self, config: PromotionConfig, renderer: TaskDefinitionRenderer,
                 deployer: ECSServiceDeployer, locator: LoadBalancerLocator,
                 validator: HealthValidator, state_manager: StateManager):
        self.config = config
        self.renderer = renderer
        self.deployer = deployer
        self.locator = locator
        self.validator = validator
        self.state_manager = state_manager

    def _log_deployment(self, env: EnvironmentConfig, endpoint: Optional[str]) -> None:
        for deployment in self.deployer.deployments(env.cluster, env.service):
            logger.info(
                f"{env.name} deployment {deployment['status']}: {deployment['taskDefinition']} "
                f"({deployment['running']}/{deployment['desired']} running, "
                f"rollout {deployment['rolloutState']})")

        if endpoint:
            logger.info(f"🌐 {env.name} application URL: {endpoint}")
            logger.info(f"🏠 Home page: {endpoint}/")
            logger.info(f"ℹ️ About page: {endpoint}/about.html")
            logger.info(f"❤️ Health check: {endpoint}{self.config.health.liveness_path}")
        else:
            logger.warning(f"Could not find load balancer DNS name for {env.name}")

    def validate(self, environment: str, image: Optional[str] = None,
                 settle: bool = True) -> HealthVerdict:
        """Validate ``environment`` as it runs now and write its summary."""
        env = self.config.environment(environment)
        endpoint = self.locator.endpoint_for(env)
        verdict = self.validator.validate(
            endpoint,
            env.latency_ceiling,
            lambda: self.deployer.replica_counts(env.cluster, env.service),
            settle=settle,
        )
        summary_report.write_summary(self.config.summary_dir, env.name, verdict, image)
        return verdict

    def promote(self, environment: str, artifact: Artifact) -> StageResult:
        """Promote ``artifact`` to ``environment``.

        Every failure is returned as a fatal StageResult. The record created
        for the attempt is marked failed and the earlier record stays in the
        ledger untouched.
        """
        env = self.config.environment(environment)
        start = time.monotonic()
        record = None
        verdict = None
        logger.info(f"🚀 Promoting {artifact.image_uri} to {env.name}")

        try:
            previous = self.deployer.current_task_definition(env.cluster, env.service)
            registered = self.renderer.render_and_register(previous or env.task_family, artifact.image_uri)
            task_definition_arn = registered['task_definition_arn']

            self.deployer.apply(env.cluster, env.service, task_definition_arn)
            record = self.state_manager.record_applied(
                environment=env.name,
                image=artifact.image_uri,
                commit_sha=artifact.commit_sha,
                task_definition_arn=task_definition_arn,
                previous_task_definition_arn=previous,
            )

            self.deployer.wait_for_stability(
                env.cluster, env.service, task_definition_arn,
                timeout=self.config.stabilization_timeout,
                poll_interval=self.config.stabilization_poll_interval,
            )
            record = self.state_manager.update_status(record.record_id, DeploymentRecordStatus.STABLE)

            endpoint = self.locator.endpoint_for(env)
            self._log_deployment(env, endpoint)
            verdict = self.validator.validate(
                endpoint,
                env.latency_ceiling,
                lambda: self.deployer.replica_counts(env.cluster, env.service),
            )
            summary_report.write_summary(self.config.summary_dir, env.name, verdict, artifact.image_uri)
            if not verdict.healthy:
                raise HealthCheckError(verdict, env.name)

            record = self.state_manager.update_status(record.record_id, DeploymentRecordStatus.HEALTHY)

        except PromotionError as e:
            if record is not None:
                record = self.state_manager.update_status(
                    record.record_id, DeploymentRecordStatus.FAILED, e.message)
            logger.error(f"❌ Promotion of {env.name} failed: {e}")
            return StageResult.fatal(env.name, str(e), verdict=verdict, record=record,
                                     duration_seconds=time.monotonic() - start, exit_code=e.exit_code)

        duration = time.monotonic() - start
        logger.info(f"✅ {env.name} is running {artifact.image_uri} ({duration:.2f}s)")
        return StageResult.success(env.name, f"{artifact.image_uri} healthy", verdict=verdict,
                                   record=record, duration_seconds=duration)


class PromotionOrchestrator:
    """Sequence the build stage and the environment stages."""

    def __init__(self, config: PromotionConfig, publisher: ImagePublisher,
                 promoter: EnvironmentPromoter, max_workers: Optional[int] = None):
        self.config = config
        self.publisher = publisher
        self.promoter = promoter
        self.max_workers = max_workers or config.max_parallel_environments

    def plan(self) -> List[List[str]]:
        """Environments grouped into waves that may run side by side."""
        return self.config.waves()

    def build(self, commit_sha: str, skip_build: bool = False) -> Tuple[Optional[Artifact], StageResult]:
        """Build and publish the artifact, or resolve an already published one."""
        start = time.monotonic()
        try:
            if skip_build:
                logger.info(f"Skipping build, resolving published image for {commit_sha}")
                artifact = self.publisher.resolve(commit_sha)
            else:
                artifact = self.publisher.build_and_publish(commit_sha, self.config.build_context)
        except PromotionError as e:
            logger.error(f"❌ Build stage failed: {e}")
            return None, StageResult.fatal(BUILD_STAGE, str(e), exit_code=e.exit_code,
                                           duration_seconds=time.monotonic() - start)

        summary_report.write_github_output("image", artifact.image_uri)
        summary_report.append_step_summary(f"image={artifact.image_uri}")
        return artifact, StageResult.success(BUILD_STAGE, artifact.image_uri,
                                             duration_seconds=time.monotonic() - start)

    def _promote_one(self, environment: str, artifact: Artifact) -> StageResult:
        try:
            return self.promoter.promote(environment, artifact)
        except Exception as e:
            logger.exception(f"Unexpected error promoting {environment}")
            return StageResult.fatal(environment, f"unexpected error: {e}")

    def _ready(self, name: str, results: Dict[str, StageResult]) -> bool:
        env = self.config.environment(name)
        return all(dep in results and results[dep].succeeded for dep in env.depends_on)

    def promote(self, artifact: Artifact) -> Dict[str, StageResult]:
        """Promote ``artifact`` through every environment in dependency order."""
        pending = list(self.config.environment_names)
        results: Dict[str, StageResult] = {}
        running: Dict[Future, str] = {}
        halted_by: Optional[str] = None

        with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="promote") as executor:
            while pending or running:
                if halted_by is None:
                    for name in list(pending):
                        if len(running) >= self.max_workers:
                            break
                        if self._ready(name, results):
                            pending.remove(name)
                            running[executor.submit(self._promote_one, name, artifact)] = name

                if not running:
                    break

                done, _ = wait(running, return_when=FIRST_COMPLETED)
                for future in done:
                    name = running.pop(future)
                    results[name] = future.result()
                    if not results[name].succeeded and halted_by is None:
                        halted_by = name
                        logger.error(f"⛔ Halting promotion chain after {name} failed")

        for name in pending:
            results[name] = StageResult.skipped(name, f"blocked by {halted_by}")
            logger.warning(f"⏭️ {name} not started: blocked by {halted_by}")

        return {name: results[name] for name in self.config.environment_names}

    def run(self, commit_sha: str, skip_build: bool = False) -> PromotionResult:
        """Build once, then promote through the whole chain."""
        logger.info(f"Promotion plan: {' -> '.join('+'.join(w) for w in self.plan())}")
        artifact, build_result = self.build(commit_sha, skip_build=skip_build)
        if artifact is None:
            skipped = {
                name: StageResult.skipped(name, f"blocked by {BUILD_STAGE}")
                for name in self.config.environment_names
            }
            return PromotionResult(artifact=None, build=build_result, environments=skipped)

        result = PromotionResult(artifact=artifact, build=build_result,
                                 environments=self.promote(artifact))
        if result.succeeded:
            logger.info(f"🎉 {artifact.image_uri} promoted to {', '.join(self.config.environment_names)}")
        else:
            logger.error(f"❌ Promotion stopped at {result.failed_stage.name}: {result.failed_stage.message}")
        return result


def create_environment_promoter(config: PromotionConfig, clients: AWSClientManager,
                                state_manager: Optional[StateManager] = None,
                                session: Optional[requests.Session] = None) -> EnvironmentPromoter:
    """Wire an EnvironmentPromoter to real AWS clients."""
    return EnvironmentPromoter(
        config=config,
        renderer=TaskDefinitionRenderer(clients.ecs(), config.container_name),
        deployer=ECSServiceDeployer(clients.ecs()),
        locator=LoadBalancerLocator(clients.elbv2()),
        validator=HealthValidator(config.health, session=session),
        state_manager=state_manager or StateManager(config.ledger_path),
    )


def create_orchestrator(config: PromotionConfig, clients: AWSClientManager,
                        state_manager: Optional[StateManager] = None,
                        session: Optional[requests.Session] = None) -> PromotionOrchestrator:
    """Wire a PromotionOrchestrator to real AWS clients."""
    return PromotionOrchestrator(
        config=config,
        publisher=ImagePublisher(clients.ecr(), config.repository),
        promoter=create_environment_promoter(config, clients, state_manager, session),
    )
