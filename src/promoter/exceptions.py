"""Exception hierarchy for the promoter.

All exceptions inherit from PromotionError so callers can catch every
promotion failure with a single except clause.

Exception Hierarchy:
    PromotionError (base)
    ├── FatalError                 # Halts the promotion chain
    │   ├── BuildError             # Image build failed
    │   ├── PublishError           # Tags missing or not identical in the registry
    │   ├── DeploymentError        # Task definition or service update rejected
    │   ├── StabilizationError     # Service did not become stable in time
    │   └── HealthCheckError       # Post-deployment validation failed
    ├── TransientProbeError        # One probe attempt failed, may be retried
    ├── PipelineConfigError        # Invalid environment graph or settings
    ├── PrerequisiteError          # Required tool or credentials missing
    └── RollbackError              # Manual rollback could not be applied

Exit Codes:
    0 - Success
    1 - General error (PromotionError)
    2 - Configuration error (PipelineConfigError)
    3 - Missing prerequisites (PrerequisiteError)
    4 - Build or publish failure (BuildError, PublishError)
    5 - Deployment or stabilization failure (DeploymentError, StabilizationError)
    6 - Health validation failure (HealthCheckError)
    7 - Rollback failure (RollbackError)
"""
from typing import Optional


class PromotionError(Exception):
    """Base exception for all promoter errors.

    Attributes:
        exit_code: CLI exit code for this error type (default: 1).
        environment: Environment the error belongs to, when there is one.
    """

    exit_code: int = 1

    def __init__(self, message: str, environment: Optional[str] = None):
        self.message = message
        self.environment = environment
        super().__init__(message)

    def __str__(self):
        if self.environment:
            return f"[{self.environment}] {self.message}"
        return self.message


class FatalError(PromotionError):
    """Failure that stops the chain; nothing downstream may start."""


class BuildError(FatalError):
    """Raised when the container image cannot be built."""

    exit_code: int = 4


class PublishError(FatalError):
    """Raised when the artifact is not fully published.

    Both tags must exist in the registry and resolve to the same digest;
    anything less leaves the artifact unpublished.
    """

    exit_code: int = 4


class DeploymentError(FatalError):
    """Raised when the updated service specification cannot be applied."""

    exit_code: int = 5


class StabilizationError(FatalError):
    """Raised when a service rollout fails or exceeds its timeout."""

    exit_code: int = 5


class HealthCheckError(FatalError):
    """Raised when post-deployment validation fails.

    Attributes:
        verdict: The HealthVerdict naming the failed check.
    """

    exit_code: int = 6

    def __init__(self, verdict, environment: Optional[str] = None):
        self.verdict = verdict
        super().__init__(verdict.message, environment)


class TransientProbeError(PromotionError):
    """A single probe attempt failed. Retried before it becomes fatal."""


class PipelineConfigError(PromotionError):
    """Raised for an invalid environment graph or inconsistent settings."""

    exit_code: int = 2


class PrerequisiteError(PromotionError):
    """Raised when docker or AWS credentials are not available."""

    exit_code: int = 3


class RollbackError(PromotionError):
    """Raised when a prior deployment record cannot be re-applied."""

    exit_code: int = 7
