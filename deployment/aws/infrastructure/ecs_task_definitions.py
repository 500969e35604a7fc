"""
ECS Task Definition Renderer

Purpose: fetch an environment's current task definition, substitute the new
image into one named container and register the result as a new revision.

Main class: TaskDefinitionRenderer with fetch (describe), render (pure, returns
Dict) and register (returns ARN).

Key features: only the container image changes. Resource limits, environment
variables, secrets, port mappings, logging and networking are carried over as
they are. Read-only fields returned by DescribeTaskDefinition are dropped
before registration.
"""
import copy
import logging
from typing import Dict, Any, Optional

from botocore.exceptions import ClientError

from promoter.exceptions import DeploymentError

logger = logging.getLogger(__name__)

# Fields RegisterTaskDefinition accepts; everything else in a describe
# response (taskDefinitionArn, revision, status, registeredAt, ...) is output only.
REGISTERABLE_FIELDS = (
    'family',
    'taskRoleArn',
    'executionRoleArn',
    'networkMode',
    'containerDefinitions',
    'volumes',
    'placementConstraints',
    'requiresCompatibilities',
    'cpu',
    'memory',
    'pidMode',
    'ipcMode',
    'proxyConfiguration',
    'inferenceAccelerators',
    'ephemeralStorage',
    'runtimePlatform',
)


class TaskDefinitionRenderer:
    """Swap the image of one container in an existing task definition."""

    def __init__(self, ecs_client, container_name: str):
        self.ecs_client = ecs_client
        self.container_name = container_name

    def fetch(self, task_definition: str) -> Dict[str, Any]:
        """Download the current task definition (family, family:revision or ARN)."""
        try:
            response = self.ecs_client.describe_task_definition(
                taskDefinition=task_definition,
                include=['TAGS'],
            )
        except ClientError as e:
            raise DeploymentError(
                f"Could not describe task definition {task_definition}: {e}") from e

        task_def = response['taskDefinition']
        tags = response.get('tags')
        if tags:
            task_def = dict(task_def, tags=tags)
        logger.info(f"Fetched task definition {task_def.get('taskDefinitionArn', task_definition)}")
        return task_def

    def render(self, task_def: Dict[str, Any], image: str) -> Dict[str, Any]:
        """Return registration input with ``image`` substituted, nothing else changed."""
        rendered = {}
        for key in REGISTERABLE_FIELDS:
            value = task_def.get(key)
            if value is not None:
                rendered[key] = copy.deepcopy(value)
        if task_def.get('tags'):
            rendered['tags'] = copy.deepcopy(task_def['tags'])

        containers = rendered.get('containerDefinitions', [])
        matches = [c for c in containers if c.get('name') == self.container_name]
        if not matches:
            names = [c.get('name') for c in containers]
            raise DeploymentError(
                f"Container '{self.container_name}' not found in task definition "
                f"{task_def.get('family')}; containers: {names}")

        for container in matches:
            logger.debug(f"Replacing image {container.get('image')} -> {image}")
            container['image'] = image
        return rendered

    def register(self, rendered: Dict[str, Any]) -> str:
        """Register the rendered task definition and return its ARN."""
        try:
            response = self.ecs_client.register_task_definition(**rendered)
        except ClientError as e:
            raise DeploymentError(
                f"Failed to register task definition {rendered.get('family')}: {e}") from e

        arn = response['taskDefinition']['taskDefinitionArn']
        logger.info(f"Registered task definition: {arn}")
        return arn

    def render_and_register(self, task_definition: str, image: str) -> Dict[str, Optional[str]]:
        """Fetch, render and register; returns previous and new ARNs."""
        current = self.fetch(task_definition)
        new_arn = self.register(self.render(current, image))
        return {
            'previous_task_definition_arn': current.get('taskDefinitionArn'),
            'task_definition_arn': new_arn,
        }
