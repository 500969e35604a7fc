# src/promoter/config/settings.py
from typing import Optional, Dict, List
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache


DEFAULT_ENVIRONMENTS = ["dev", "qa", "perf", "uat", "prod"]

DEFAULT_DEPENDENCIES = {
    "dev": [],
    "qa": ["dev"],
    "perf": ["qa"],
    "uat": ["qa"],
    "prod": ["qa", "perf", "uat"],
}

DEFAULT_LATENCY_CEILINGS = {
    "dev": 3.0,
    "qa": 2.5,
    "perf": 2.0,
    "uat": 2.0,
    "prod": 1.5,
}

VALID_LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


class Settings(BaseSettings):
    """
    Single source of truth for all promoter settings.

    Configuration precedence:
    1. Environment variables (highest priority)
    2. .env file (if exists)
    3. Default values in this class (lowest priority)

    Dictionary and list fields are read from the environment as JSON, e.g.
    ``LATENCY_CEILINGS='{"prod": 1.0}'``.

    Usage:
        from promoter.config.settings import get_settings
        settings = get_settings()
        repository = settings.ecr_repository
    """

    # AWS Core Settings
    aws_region: str = Field(
        default="us-east-1",
        alias="AWS_REGION"
    )

    aws_profile: Optional[str] = Field(
        default=None,
        alias="AWS_PROFILE"
    )

    aws_endpoint_url: Optional[str] = Field(
        default=None,
        alias="AWS_ENDPOINT_URL",
        description="Alternate AWS endpoint (moto server or localstack)"
    )

    # Registry Configuration
    ecr_repository: str = Field(
        default="base-infra-dev",
        alias="ECR_REPOSITORY",
        description="ECR repository shared by every environment"
    )

    container_name: str = Field(
        default="base-infra",
        alias="CONTAINER_NAME",
        description="Container whose image is replaced in each task definition"
    )

    build_context: str = Field(
        default="application",
        description="Docker build context directory"
    )

    # Environment Topology
    resource_prefix: str = Field(
        default="base-infra",
        description="Prefix for cluster, service, task family and load balancer names"
    )

    environments: List[str] = Field(
        default_factory=lambda: list(DEFAULT_ENVIRONMENTS),
        description="Environments in declaration order"
    )

    environment_dependencies: Dict[str, List[str]] = Field(
        default_factory=lambda: {k: list(v) for k, v in DEFAULT_DEPENDENCIES.items()},
        description="Upstream environments for each environment"
    )

    cluster_overrides: Dict[str, str] = Field(default_factory=dict)
    service_overrides: Dict[str, str] = Field(default_factory=dict)
    load_balancer_overrides: Dict[str, str] = Field(default_factory=dict)
    endpoint_overrides: Dict[str, str] = Field(
        default_factory=dict,
        description="Explicit base URLs that bypass load balancer discovery"
    )

    latency_ceilings: Dict[str, float] = Field(
        default_factory=lambda: dict(DEFAULT_LATENCY_CEILINGS),
        description="Maximum home page response time per environment, in seconds"
    )

    # Stabilization
    stabilization_timeout: int = Field(
        default=900,
        description="Seconds to wait for a service to become stable"
    )

    stabilization_poll_interval: int = Field(
        default=15,
        description="Seconds between service stability polls"
    )

    # Health Validation
    health_initial_delay: int = Field(
        default=30,
        description="Seconds to let the service settle before probing"
    )

    health_attempts: int = Field(
        default=5,
        description="Liveness probe attempts before the check is fatal"
    )

    health_retry_delay: float = Field(
        default=10.0,
        description="Fixed spacing between liveness probe attempts"
    )

    probe_timeout: float = Field(
        default=10.0,
        description="Per-request HTTP timeout in seconds"
    )

    liveness_path: str = Field(default="/health")
    home_page_marker: str = Field(default="AWS ECS Demo")
    about_page_marker: str = Field(default="About")

    # Orchestration
    max_parallel_environments: int = Field(
        default=2,
        description="Upper bound on environments promoted at the same time"
    )

    # Reporting and State
    summary_dir: str = Field(
        default=".",
        description="Directory for per-environment test result summaries"
    )

    summary_retention_days: int = Field(
        default=7,
        description="Days a test result summary is kept"
    )

    ledger_path: str = Field(
        default=".promotion_records.json",
        description="Deployment record ledger file"
    )

    # Trigger Policy
    trigger_branch: str = Field(default="main")
    trigger_paths: List[str] = Field(
        default_factory=lambda: ["application/**"]
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Logging level"
    )

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v):
        """Validate and normalize the logging level."""
        level = v.upper()
        if level not in VALID_LOG_LEVELS:
            raise ValueError(f"Invalid log_level: {v}. Must be one of {VALID_LOG_LEVELS}")
        return level

    @field_validator('health_attempts', 'max_parallel_environments')
    @classmethod
    def validate_positive(cls, v):
        """Counts must allow at least one unit of work."""
        if v < 1:
            raise ValueError("must be at least 1")
        return v

    @field_validator('stabilization_timeout', 'stabilization_poll_interval')
    @classmethod
    def validate_bounded_wait(cls, v):
        """Every blocking wait needs a positive bound."""
        if v <= 0:
            raise ValueError("must be a positive number of seconds")
        return v

    def resource_name(self, environment: str) -> str:
        """Default cluster/service/family/load balancer name for an environment."""
        return f"{self.resource_prefix}-{environment}"

    def get_environment_dict(self) -> dict:
        """Get configuration as a dictionary suitable for display or subprocess.

        Returns:
            Dictionary of environment variables
        """
        env_dict = {
            'AWS_REGION': self.aws_region,
            'ECR_REPOSITORY': self.ecr_repository,
            'CONTAINER_NAME': self.container_name,
            'LOG_LEVEL': self.log_level,
        }
        for environment in self.environments:
            upper = environment.upper()
            env_dict[f'ECS_CLUSTER_{upper}'] = self.cluster_overrides.get(
                environment, self.resource_name(environment))
            env_dict[f'ECS_SERVICE_{upper}'] = self.service_overrides.get(
                environment, self.resource_name(environment))
        if self.aws_endpoint_url:
            env_dict['AWS_ENDPOINT_URL'] = self.aws_endpoint_url
        return env_dict

    model_config = SettingsConfigDict(
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.
    This ensures we only create one Settings instance per process.
    """
    return Settings()
