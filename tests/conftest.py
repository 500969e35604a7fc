import boto3
import pytest
from moto import mock_aws

from promoter.config import build_promotion_config, get_settings
from promoter.config.settings import Settings
from tests.consts import TEST_CONTAINER, TEST_REGION
from tests.fixtures.docker_fixtures import FakeDocker


@pytest.fixture
def mocked_aws(monkeypatch):
    """Fake credentials and moto backends for every AWS call in the test."""
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "testing")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "testing")
    monkeypatch.setenv("AWS_SECURITY_TOKEN", "testing")
    monkeypatch.setenv("AWS_SESSION_TOKEN", "testing")
    monkeypatch.setenv("AWS_DEFAULT_REGION", TEST_REGION)
    monkeypatch.delenv("AWS_PROFILE", raising=False)
    monkeypatch.delenv("AWS_ENDPOINT_URL", raising=False)

    with mock_aws():
        yield


@pytest.fixture
def clean_settings_env(monkeypatch):
    """Drop host variables that would otherwise feed into Settings."""
    for name, field in Settings.model_fields.items():
        monkeypatch.delenv((field.alias or name).upper(), raising=False)


@pytest.fixture
def settings(tmp_path, clean_settings_env):
    return Settings(
        _env_file=None,
        summary_dir=str(tmp_path / "summaries"),
        ledger_path=str(tmp_path / "ledger.json"),
        health_initial_delay=0,
    )


@pytest.fixture
def promotion_config(settings):
    return build_promotion_config(settings)


@pytest.fixture
def clear_settings_cache():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def ecs_service(mocked_aws):
    """A qa cluster running revision 1 of its task definition."""
    ecs = boto3.client("ecs", region_name=TEST_REGION)
    ecs.create_cluster(clusterName="base-infra-qa")
    task_def = ecs.register_task_definition(
        family="base-infra-qa",
        networkMode="awsvpc",
        requiresCompatibilities=["FARGATE"],
        cpu="256",
        memory="512",
        containerDefinitions=[
            {
                "name": TEST_CONTAINER,
                "image": "123456789012.dkr.ecr.us-east-1.amazonaws.com/base-infra-dev:0000000",
                "memory": 512,
                "essential": True,
                "portMappings": [{"containerPort": 80, "protocol": "tcp"}],
                "environment": [{"name": "ENVIRONMENT", "value": "qa"}],
            },
            {
                "name": "log-router",
                "image": "public.ecr.aws/aws-observability/aws-for-fluent-bit:stable",
                "memory": 64,
                "essential": False,
            },
        ],
    )
    arn = task_def["taskDefinition"]["taskDefinitionArn"]
    ecs.create_service(
        cluster="base-infra-qa",
        serviceName="base-infra-qa",
        taskDefinition=arn,
        desiredCount=2,
    )
    return {"client": ecs, "cluster": "base-infra-qa", "service": "base-infra-qa",
            "task_definition_arn": arn}


@pytest.fixture
def ecr_client(mocked_aws):
    return boto3.client("ecr", region_name=TEST_REGION)


@pytest.fixture
def fake_docker(ecr_client):
    return FakeDocker(ecr_client)
