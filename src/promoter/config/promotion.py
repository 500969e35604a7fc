"""
Immutable promotion configuration.

``Settings`` is read once by the CLI and converted into a ``PromotionConfig``
which is passed explicitly into every stage. Nothing below the CLI reads
settings or the process environment on its own.
"""
import logging
from dataclasses import dataclass, field
from graphlib import CycleError, TopologicalSorter
from typing import Dict, List, Optional, Tuple

from promoter.config.settings import Settings
from promoter.exceptions import PipelineConfigError

logger = logging.getLogger(__name__)

# Environments that must sit upstream of a production environment when both exist
PRODUCTION_ENVIRONMENT = "prod"
QUALITY_GATE_ENVIRONMENT = "qa"


@dataclass(frozen=True)
class ContentCheck:
    """Fixed substring that must appear in the body served at ``path``."""
    path: str
    expected: str


@dataclass(frozen=True)
class HealthPolicy:
    """Probe parameters shared by every environment."""
    liveness_path: str = "/health"
    attempts: int = 5
    retry_delay: float = 10.0
    initial_delay: float = 30.0
    request_timeout: float = 10.0
    latency_path: str = "/"
    content_checks: Tuple[ContentCheck, ...] = (
        ContentCheck("/", "AWS ECS Demo"),
        ContentCheck("/about.html", "About"),
    )
    smoke_paths: Tuple[str, ...] = ("/", "/about.html", "/health")


@dataclass(frozen=True)
class EnvironmentConfig:
    """Deployment target for one environment."""
    name: str
    cluster: str
    service: str
    task_family: str
    load_balancer_name: str
    latency_ceiling: float
    depends_on: Tuple[str, ...] = ()
    endpoint: Optional[str] = None


@dataclass(frozen=True)
class PromotionConfig:
    """Everything a promotion run needs, fixed for the whole run."""
    region: str
    repository: str
    container_name: str
    build_context: str
    environments: Tuple[EnvironmentConfig, ...]
    health: HealthPolicy = field(default_factory=HealthPolicy)
    stabilization_timeout: float = 900.0
    stabilization_poll_interval: float = 15.0
    max_parallel_environments: int = 2
    summary_dir: str = "."
    summary_retention_days: int = 7
    ledger_path: str = ".promotion_records.json"

    def environment(self, name: str) -> EnvironmentConfig:
        """Look up an environment by name."""
        for env in self.environments:
            if env.name == name:
                return env
        raise PipelineConfigError(f"Unknown environment: {name}")

    @property
    def environment_names(self) -> List[str]:
        return [env.name for env in self.environments]

    def waves(self) -> List[List[str]]:
        """Group environments into waves that may run side by side.

        Every environment in a wave depends only on environments in earlier
        waves. Order inside a wave follows declaration order.
        """
        return topological_waves(
            {env.name: env.depends_on for env in self.environments},
            self.environment_names,
        )

    def upstream_of(self, name: str) -> List[str]:
        """All environments that transitively precede ``name``."""
        graph = {env.name: env.depends_on for env in self.environments}
        seen: List[str] = []
        stack = list(graph.get(name, ()))
        while stack:
            current = stack.pop()
            if current in seen:
                continue
            seen.append(current)
            stack.extend(graph.get(current, ()))
        return seen


def topological_waves(graph: Dict[str, Tuple[str, ...]], order: List[str]) -> List[List[str]]:
    """Return dependency waves for ``graph``, raising on cycles."""
    sorter = TopologicalSorter(graph)
    try:
        sorter.prepare()
    except CycleError as e:
        raise PipelineConfigError(f"Environment dependencies contain a cycle: {e.args[1]}") from e

    position = {name: index for index, name in enumerate(order)}
    waves = []
    while sorter.is_active():
        ready = sorted(sorter.get_ready(), key=lambda n: position.get(n, len(position)))
        waves.append(list(ready))
        sorter.done(*ready)
    return waves


def validate_dependencies(environments: List[str], dependencies: Dict[str, List[str]]) -> None:
    """Check the dependency graph before any stage runs."""
    if not environments:
        raise PipelineConfigError("At least one environment must be configured")

    duplicates = {name for name in environments if environments.count(name) > 1}
    if duplicates:
        raise PipelineConfigError(f"Duplicate environments: {sorted(duplicates)}")

    unknown_keys = set(dependencies) - set(environments)
    if unknown_keys:
        raise PipelineConfigError(
            f"Dependencies declared for unknown environments: {sorted(unknown_keys)}")

    for name in environments:
        for upstream in dependencies.get(name, []):
            if upstream not in environments:
                raise PipelineConfigError(f"{name} depends on unknown environment {upstream}")
            if upstream == name:
                raise PipelineConfigError(f"{name} cannot depend on itself")

    graph = {name: tuple(dependencies.get(name, [])) for name in environments}
    topological_waves(graph, environments)

    if PRODUCTION_ENVIRONMENT in environments and QUALITY_GATE_ENVIRONMENT in environments:
        if not _reaches(graph, PRODUCTION_ENVIRONMENT, QUALITY_GATE_ENVIRONMENT):
            raise PipelineConfigError(
                f"{PRODUCTION_ENVIRONMENT} must be downstream of {QUALITY_GATE_ENVIRONMENT}")


def _reaches(graph: Dict[str, Tuple[str, ...]], start: str, target: str) -> bool:
    stack = list(graph.get(start, ()))
    seen = set()
    while stack:
        current = stack.pop()
        if current == target:
            return True
        if current in seen:
            continue
        seen.add(current)
        stack.extend(graph.get(current, ()))
    return False


def build_promotion_config(settings: Settings) -> PromotionConfig:
    """Freeze ``settings`` into the configuration passed to every stage."""
    environments = list(settings.environments)
    validate_dependencies(environments, settings.environment_dependencies)

    env_configs = []
    for name in environments:
        default_name = settings.resource_name(name)
        service = settings.service_overrides.get(name, default_name)
        if name not in settings.latency_ceilings:
            raise PipelineConfigError(f"No latency ceiling configured for {name}")
        env_configs.append(EnvironmentConfig(
            name=name,
            cluster=settings.cluster_overrides.get(name, default_name),
            service=service,
            task_family=service,
            load_balancer_name=settings.load_balancer_overrides.get(name, default_name),
            latency_ceiling=float(settings.latency_ceilings[name]),
            depends_on=tuple(settings.environment_dependencies.get(name, [])),
            endpoint=settings.endpoint_overrides.get(name),
        ))

    health = HealthPolicy(
        liveness_path=settings.liveness_path,
        attempts=settings.health_attempts,
        retry_delay=settings.health_retry_delay,
        initial_delay=settings.health_initial_delay,
        request_timeout=settings.probe_timeout,
        content_checks=(
            ContentCheck("/", settings.home_page_marker),
            ContentCheck("/about.html", settings.about_page_marker),
        ),
        smoke_paths=("/", "/about.html", settings.liveness_path),
    )

    config = PromotionConfig(
        region=settings.aws_region,
        repository=settings.ecr_repository,
        container_name=settings.container_name,
        build_context=settings.build_context,
        environments=tuple(env_configs),
        health=health,
        stabilization_timeout=float(settings.stabilization_timeout),
        stabilization_poll_interval=float(settings.stabilization_poll_interval),
        max_parallel_environments=settings.max_parallel_environments,
        summary_dir=settings.summary_dir,
        summary_retention_days=settings.summary_retention_days,
        ledger_path=settings.ledger_path,
    )
    logger.debug(f"Promotion waves: {config.waves()}")
    return config
