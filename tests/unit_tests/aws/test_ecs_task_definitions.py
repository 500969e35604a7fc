import pytest

from deployment.aws.infrastructure.ecs_task_definitions import TaskDefinitionRenderer
from promoter.exceptions import DeploymentError
from tests.consts import TEST_CONTAINER

NEW_IMAGE = "123456789012.dkr.ecr.us-east-1.amazonaws.com/base-infra-dev:3f2a9c1"


def test_render_changes_only_the_image(ecs_service):
    renderer = TaskDefinitionRenderer(ecs_service["client"], TEST_CONTAINER)
    current = renderer.fetch(ecs_service["task_definition_arn"])

    rendered = renderer.render(current, NEW_IMAGE)

    app, sidecar = rendered["containerDefinitions"]
    assert app["image"] == NEW_IMAGE
    assert app["environment"] == [{"name": "ENVIRONMENT", "value": "qa"}]
    assert app["portMappings"][0]["containerPort"] == 80
    assert sidecar["image"] == current["containerDefinitions"][1]["image"]
    assert rendered["cpu"] == "256"
    assert rendered["memory"] == "512"
    assert rendered["networkMode"] == "awsvpc"
    assert "taskDefinitionArn" not in rendered
    assert "revision" not in rendered
    # Input is left untouched
    assert current["containerDefinitions"][0]["image"] != NEW_IMAGE


def test_render_and_register_new_revision(ecs_service):
    renderer = TaskDefinitionRenderer(ecs_service["client"], TEST_CONTAINER)

    result = renderer.render_and_register("base-infra-qa", NEW_IMAGE)

    assert result["previous_task_definition_arn"] == ecs_service["task_definition_arn"]
    assert result["task_definition_arn"].endswith("base-infra-qa:2")
    registered = ecs_service["client"].describe_task_definition(
        taskDefinition=result["task_definition_arn"])["taskDefinition"]
    assert registered["containerDefinitions"][0]["image"] == NEW_IMAGE


def test_missing_container_is_rejected(ecs_service):
    renderer = TaskDefinitionRenderer(ecs_service["client"], "no-such-container")
    current = renderer.fetch("base-infra-qa")

    with pytest.raises(DeploymentError, match="no-such-container"):
        renderer.render(current, NEW_IMAGE)


def test_unknown_family(ecs_service):
    renderer = TaskDefinitionRenderer(ecs_service["client"], TEST_CONTAINER)

    with pytest.raises(DeploymentError):
        renderer.fetch("base-infra-missing")
