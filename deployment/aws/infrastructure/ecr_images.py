"""
ECR image build and publication.

Builds the application image once, tags it with the full and the short commit
hash, pushes both tags and then confirms in the registry that the two tags
resolve to the same image digest. An artifact only counts as published when
that confirmation succeeds.
"""
import base64
import logging
import subprocess
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

from botocore.exceptions import ClientError

from promoter.exceptions import BuildError, PublishError
from promoter.models import Artifact, normalize_commit_sha
from promoter.utils.decorators import log_operation

logger = logging.getLogger(__name__)

Runner = Callable[..., subprocess.CompletedProcess]


class ImagePublisher:
    """Build, tag, push and verify images in one ECR repository."""

    def __init__(self, ecr_client, repository: str, runner: Runner = subprocess.run):
        self.ecr_client = ecr_client
        self.repository = repository
        self.runner = runner
        self._registry: Optional[str] = None

    def ensure_repository(self) -> None:
        """Create the ECR repository if it doesn't exist."""
        try:
            self.ecr_client.describe_repositories(repositoryNames=[self.repository])
            logger.info(f"ECR repository '{self.repository}' exists")
            return
        except self.ecr_client.exceptions.RepositoryNotFoundException:
            logger.info(f"ECR repository '{self.repository}' does not exist - will create")

        try:
            self.ecr_client.create_repository(
                repositoryName=self.repository,
                imageScanningConfiguration={'scanOnPush': True},
            )
            logger.info(f"Created ECR repository: {self.repository}")
        except self.ecr_client.exceptions.RepositoryAlreadyExistsException:
            logger.info(f"ECR repository {self.repository} already exists")
        except ClientError as e:
            raise BuildError(f"Failed to create ECR repository {self.repository}: {e}") from e

    def _authorization(self) -> Tuple[str, str, str]:
        """Return (registry host, username, password) from an ECR token."""
        try:
            token_response = self.ecr_client.get_authorization_token()
        except ClientError as e:
            raise BuildError(f"Could not obtain ECR authorization token: {e}") from e

        token_data = token_response['authorizationData'][0]
        token = base64.b64decode(token_data['authorizationToken']).decode('utf-8')
        username, password = token.split(':', 1)
        registry = token_data['proxyEndpoint'].split('//')[-1].rstrip('/')
        self._registry = registry
        return registry, username, password

    def registry(self) -> str:
        """Registry host, e.g. ``123456789012.dkr.ecr.us-east-1.amazonaws.com``."""
        if self._registry is None:
            self._authorization()
        return self._registry

    def _run(self, args: List[str], error_cls, **kwargs) -> None:
        logger.debug(f"Running: {' '.join(args)}")
        try:
            self.runner(args, check=True, **kwargs)
        except (subprocess.CalledProcessError, OSError) as e:
            raise error_cls(f"{args[0]} {args[1]} failed: {e}") from e

    def login(self) -> str:
        """Log docker in to the registry and return the registry host."""
        registry, username, password = self._authorization()
        self._run(
            ["docker", "login", "--username", username, "--password-stdin", registry],
            BuildError,
            input=password.encode(),
        )
        logger.info(f"Logged in to ECR registry: {registry}")
        return registry

    @log_operation("Build and publish image")
    def build_and_publish(self, commit_sha: str, context_dir: str,
                          dockerfile: Optional[str] = None) -> Artifact:
        """Build one image for ``commit_sha`` and publish it under both tags."""
        try:
            commit_sha = normalize_commit_sha(commit_sha)
        except ValueError as e:
            raise BuildError(str(e)) from e
        context = Path(context_dir)
        if not context.is_dir():
            raise BuildError(f"Build context not found: {context}")

        self.ensure_repository()
        registry = self.login()
        artifact = Artifact(registry=registry, repository=self.repository, commit_sha=commit_sha)

        build_args = ["docker", "build"]
        for tag in artifact.tags:
            build_args += ["-t", artifact.uri_for(tag)]
        build_args += ["--label", f"org.opencontainers.image.revision={artifact.commit_sha}"]
        if dockerfile:
            build_args += ["-f", dockerfile]
        build_args.append(str(context))

        logger.info(f"📦 Building image for commit {artifact.short_sha}")
        self._run(build_args, BuildError)

        for tag in artifact.tags:
            logger.info(f"Pushing {artifact.uri_for(tag)}")
            self._run(["docker", "push", artifact.uri_for(tag)], PublishError)

        digest = self.verify_published(artifact)
        published = artifact.with_digest(digest)
        logger.info(f"✅ Published {published.image_uri} ({digest})")
        return published

    def resolve(self, commit_sha: str) -> Artifact:
        """Look up an artifact that was published by an earlier run."""
        try:
            commit_sha = normalize_commit_sha(commit_sha)
        except ValueError as e:
            raise PublishError(str(e)) from e
        artifact = Artifact(registry=self.registry(), repository=self.repository, commit_sha=commit_sha)
        return artifact.with_digest(self.verify_published(artifact))

    def verify_published(self, artifact: Artifact) -> str:
        """Confirm both tags exist and point at one digest; return that digest."""
        image_ids = [{'imageTag': tag} for tag in artifact.tags]
        try:
            response = self.ecr_client.describe_images(
                repositoryName=artifact.repository,
                imageIds=image_ids,
            )
        except ClientError as e:
            code = e.response.get('Error', {}).get('Code')
            raise PublishError(
                f"Artifact {artifact.short_sha} is not published ({code}): {e}") from e

        digests = self._digests_by_tag(response.get('imageDetails', []), artifact.tags)
        missing = [tag for tag in artifact.tags if tag not in digests]
        if missing:
            raise PublishError(f"Tags missing from {artifact.repository}: {missing}")

        distinct = set(digests.values())
        if len(distinct) != 1:
            raise PublishError(
                f"Tags of {artifact.short_sha} resolve to different images: {digests}")
        return distinct.pop()

    @staticmethod
    def _digests_by_tag(details: List[Dict[str, Any]], tags: Tuple[str, ...]) -> Dict[str, str]:
        digests = {}
        for detail in details:
            for tag in detail.get('imageTags', []):
                if tag in tags:
                    digests[tag] = detail['imageDigest']
        return digests
