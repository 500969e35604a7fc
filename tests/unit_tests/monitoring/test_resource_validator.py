import json

import boto3
import pytest

from deployment.aws.monitoring.resource_validator import ResourceValidator
from promoter.exceptions import PrerequisiteError
from tests.consts import TEST_REGION


def on_path(tool):
    return f"/usr/bin/{tool}"


def not_on_path(tool):
    return None


def test_prerequisites_pass(ecs_service, promotion_config):
    sts = boto3.client("sts", region_name=TEST_REGION)
    validator = ResourceValidator(sts, ecs_service["client"], which=on_path)

    assert validator.validate_prerequisites([promotion_config.environment("qa")])

    report = json.loads(validator.get_validation_report("json"))
    assert report["checks"]["credentials"]["account_id"] == "123456789012"
    assert report["checks"]["service_qa"]["status"] == "valid"
    validator.raise_for_errors()


def test_missing_docker_is_reported(mocked_aws):
    validator = ResourceValidator(boto3.client("sts", region_name=TEST_REGION), which=not_on_path)

    assert not validator.validate_prerequisites()
    assert "docker is not installed" in validator.get_validation_report("text")
    with pytest.raises(PrerequisiteError) as excinfo:
        validator.raise_for_errors()
    assert excinfo.value.exit_code == 3


def test_missing_service_is_reported(ecs_service, promotion_config):
    sts = boto3.client("sts", region_name=TEST_REGION)
    validator = ResourceValidator(sts, ecs_service["client"], which=on_path)

    assert not validator.validate_prerequisites([promotion_config.environment("prod")])
    assert any("prod" in error for error in validator.validation_results["errors"])
