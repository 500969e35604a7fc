"""
Promotion domain types.

Artifacts, health verdicts, deployment records and the typed results that
stages hand back to the orchestrator.
"""
import re
import uuid
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

SHORT_SHA_LENGTH = 7
_COMMIT_SHA = re.compile(r"^[0-9a-f]{7,40}$")


def normalize_commit_sha(commit_sha: str) -> str:
    """Lower-case ``commit_sha``; raise ValueError unless it is 7-40 hex digits."""
    sha = commit_sha.lower()
    if not _COMMIT_SHA.match(sha):
        raise ValueError(f"Invalid commit hash: {commit_sha!r}")
    return sha


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class ErrorKind(Enum):
    """The two failure classes a stage can end in."""
    FATAL = "fatal"
    TRANSIENT = "transient"


class StageStatus(Enum):
    """Outcome of one stage of the chain."""
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"


class FailureReason(Enum):
    """Named reasons a health validation can fail with."""
    ENDPOINT_UNREACHABLE = "endpoint_unreachable"
    ENDPOINT_NOT_FOUND = "endpoint_not_found"
    CONTENT_MISMATCH = "content_mismatch"
    LATENCY_EXCEEDED = "latency_exceeded"
    REPLICA_MISMATCH = "replica_mismatch"


class DeploymentRecordStatus(Enum):
    """Lifecycle of a deployment record."""
    APPLIED = "applied"
    STABLE = "stable"
    HEALTHY = "healthy"
    FAILED = "failed"


@dataclass(frozen=True)
class Artifact:
    """Container image built from one commit and published under two tags."""
    registry: str
    repository: str
    commit_sha: str
    digest: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "commit_sha", normalize_commit_sha(self.commit_sha))

    @property
    def short_sha(self) -> str:
        return self.commit_sha[:SHORT_SHA_LENGTH]

    @property
    def tags(self) -> Tuple[str, str]:
        return (self.commit_sha, self.short_sha)

    @property
    def repository_uri(self) -> str:
        return f"{self.registry}/{self.repository}"

    def uri_for(self, tag: str) -> str:
        return f"{self.repository_uri}:{tag}"

    @property
    def image_uri(self) -> str:
        """Reference substituted into each environment's task definition."""
        return self.uri_for(self.short_sha)

    def with_digest(self, digest: str) -> "Artifact":
        return Artifact(self.registry, self.repository, self.commit_sha, digest)


@dataclass(frozen=True)
class ReplicaCounts:
    """Running and desired task counts reported by ECS."""
    running: int
    desired: int
    pending: int = 0


@dataclass(frozen=True)
class CheckResult:
    """Outcome of one validation check."""
    name: str
    passed: bool
    reason: Optional[FailureReason] = None
    detail: str = ""
    skipped: bool = False


@dataclass(frozen=True)
class HealthVerdict:
    """Pass or fail, with the named reason of the first failed check."""
    healthy: bool
    checks: Tuple[CheckResult, ...] = ()
    reason: Optional[FailureReason] = None
    endpoint: Optional[str] = None

    @classmethod
    def from_checks(cls, checks: List[CheckResult], endpoint: Optional[str] = None) -> "HealthVerdict":
        failures = [c for c in checks if not c.passed and not c.skipped]
        return cls(
            healthy=not failures,
            checks=tuple(checks),
            reason=failures[0].reason if failures else None,
            endpoint=endpoint,
        )

    @property
    def failures(self) -> List[CheckResult]:
        return [c for c in self.checks if not c.passed and not c.skipped]

    @property
    def failed_reasons(self) -> List[FailureReason]:
        return [c.reason for c in self.failures]

    @property
    def message(self) -> str:
        if self.healthy:
            return "all health checks passed"
        first = self.failures[0] if self.failures else None
        if first is None:
            return f"health validation failed: {self.reason.value}"
        return f"{first.reason.value}: {first.detail}"


@dataclass
class DeploymentRecord:
    """Binding of one artifact to one environment's service."""
    environment: str
    image: str
    commit_sha: str
    task_definition_arn: str
    previous_task_definition_arn: Optional[str] = None
    status: str = DeploymentRecordStatus.APPLIED.value
    record_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    created_at: str = field(default_factory=utc_now)
    updated_at: Optional[str] = None
    superseded_by: Optional[str] = None
    rollback_of: Optional[str] = None
    reason: Optional[str] = None

    @property
    def is_current(self) -> bool:
        return self.superseded_by is None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DeploymentRecord":
        known = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
        return cls(**known)


@dataclass
class StageResult:
    """What a stage hands back to the orchestrator."""
    name: str
    status: StageStatus
    error_kind: Optional[ErrorKind] = None
    message: str = ""
    verdict: Optional[HealthVerdict] = None
    record: Optional[DeploymentRecord] = None
    duration_seconds: float = 0.0
    exit_code: int = 0

    @property
    def succeeded(self) -> bool:
        return self.status == StageStatus.SUCCEEDED

    @classmethod
    def success(cls, name: str, message: str = "", **kwargs) -> "StageResult":
        return cls(name=name, status=StageStatus.SUCCEEDED, message=message, **kwargs)

    @classmethod
    def fatal(cls, name: str, message: str, **kwargs) -> "StageResult":
        kwargs.setdefault("exit_code", 1)
        return cls(name=name, status=StageStatus.FAILED, error_kind=ErrorKind.FATAL,
                   message=message, **kwargs)

    @classmethod
    def skipped(cls, name: str, message: str) -> "StageResult":
        return cls(name=name, status=StageStatus.SKIPPED, message=message)


@dataclass
class PromotionResult:
    """Result of one run of the promotion chain."""
    artifact: Optional[Artifact]
    build: StageResult
    environments: Dict[str, StageResult] = field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return self.build.succeeded and all(r.succeeded for r in self.environments.values())

    @property
    def failed_stage(self) -> Optional[StageResult]:
        if not self.build.succeeded:
            return self.build
        for result in self.environments.values():
            if result.status == StageStatus.FAILED:
                return result
        return None

    @property
    def exit_code(self) -> int:
        failed = self.failed_stage
        return failed.exit_code if failed else 0
