import pytest

from deployment.aws.infrastructure.ecr_images import ImagePublisher
from promoter.exceptions import BuildError, PublishError
from tests.consts import TEST_COMMIT_SHA, TEST_MANIFEST, TEST_REPOSITORY, TEST_SHORT_SHA
from tests.fixtures.docker_fixtures import FakeDocker


@pytest.fixture
def build_context(tmp_path):
    context = tmp_path / "application"
    context.mkdir()
    (context / "Dockerfile").write_text("FROM nginx:alpine\n")
    return str(context)


def test_build_once_and_publish_both_tags(ecr_client, fake_docker, build_context):
    publisher = ImagePublisher(ecr_client, TEST_REPOSITORY, runner=fake_docker)

    artifact = publisher.build_and_publish(TEST_COMMIT_SHA, build_context)

    builds = fake_docker.commands("build")
    assert len(builds) == 1
    assert f"{artifact.repository_uri}:{TEST_COMMIT_SHA}" in builds[0]
    assert f"{artifact.repository_uri}:{TEST_SHORT_SHA}" in builds[0]
    assert [call[2] for call in fake_docker.commands("push")] == [
        artifact.uri_for(TEST_COMMIT_SHA),
        artifact.uri_for(TEST_SHORT_SHA),
    ]
    assert artifact.digest.startswith("sha256:")
    assert artifact.image_uri.endswith(f"/{TEST_REPOSITORY}:{TEST_SHORT_SHA}")


def test_repository_is_created_when_missing(ecr_client, fake_docker, build_context):
    publisher = ImagePublisher(ecr_client, TEST_REPOSITORY, runner=fake_docker)
    publisher.build_and_publish(TEST_COMMIT_SHA, build_context)

    repositories = ecr_client.describe_repositories()["repositories"]
    assert [r["repositoryName"] for r in repositories] == [TEST_REPOSITORY]


def test_login_uses_password_stdin(ecr_client, fake_docker, build_context):
    publisher = ImagePublisher(ecr_client, TEST_REPOSITORY, runner=fake_docker)
    publisher.build_and_publish(TEST_COMMIT_SHA, build_context)

    login = fake_docker.commands("login")[0]
    assert "--password-stdin" in login
    assert login[-1] == publisher.registry()


def test_one_failed_push_is_not_published(ecr_client, build_context):
    docker = FakeDocker(ecr_client, fail_push_for=TEST_SHORT_SHA)
    publisher = ImagePublisher(ecr_client, TEST_REPOSITORY, runner=docker)

    with pytest.raises(PublishError):
        publisher.build_and_publish(TEST_COMMIT_SHA, build_context)


def test_tags_with_different_digests_are_rejected(ecr_client, fake_docker):
    publisher = ImagePublisher(ecr_client, TEST_REPOSITORY, runner=fake_docker)
    publisher.ensure_repository()
    ecr_client.put_image(repositoryName=TEST_REPOSITORY, imageManifest=TEST_MANIFEST,
                         imageTag=TEST_COMMIT_SHA)
    ecr_client.put_image(repositoryName=TEST_REPOSITORY,
                         imageManifest=TEST_MANIFEST.replace("4f53", "9a11"),
                         imageTag=TEST_SHORT_SHA)

    with pytest.raises(PublishError, match="different images"):
        publisher.resolve(TEST_COMMIT_SHA)


def test_resolve_published_artifact(ecr_client, fake_docker):
    publisher = ImagePublisher(ecr_client, TEST_REPOSITORY, runner=fake_docker)
    publisher.ensure_repository()
    for tag in (TEST_COMMIT_SHA, TEST_SHORT_SHA):
        ecr_client.put_image(repositoryName=TEST_REPOSITORY, imageManifest=TEST_MANIFEST, imageTag=tag)

    artifact = publisher.resolve(TEST_COMMIT_SHA)

    assert artifact.digest is not None
    assert fake_docker.calls == []


def test_resolve_unpublished_artifact(ecr_client, fake_docker):
    publisher = ImagePublisher(ecr_client, TEST_REPOSITORY, runner=fake_docker)
    publisher.ensure_repository()

    with pytest.raises(PublishError):
        publisher.resolve(TEST_COMMIT_SHA)


def test_missing_build_context(ecr_client, fake_docker, tmp_path):
    publisher = ImagePublisher(ecr_client, TEST_REPOSITORY, runner=fake_docker)

    with pytest.raises(BuildError, match="Build context not found"):
        publisher.build_and_publish(TEST_COMMIT_SHA, str(tmp_path / "missing"))
    assert fake_docker.calls == []


def test_invalid_commit_hash_fails_before_touching_the_registry(ecr_client, fake_docker, build_context):
    publisher = ImagePublisher(ecr_client, TEST_REPOSITORY, runner=fake_docker)

    with pytest.raises(BuildError, match="Invalid commit hash"):
        publisher.build_and_publish("not-a-commit", build_context)

    assert ecr_client.describe_repositories()["repositories"] == []
    assert fake_docker.commands("login") == []
