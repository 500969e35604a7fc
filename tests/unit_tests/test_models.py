import pytest

from promoter.exceptions import HealthCheckError
from promoter.models import (
    Artifact,
    CheckResult,
    DeploymentRecord,
    FailureReason,
    HealthVerdict,
    PromotionResult,
    StageResult,
    StageStatus,
)
from tests.consts import TEST_COMMIT_SHA, TEST_SHORT_SHA

REGISTRY = "123456789012.dkr.ecr.us-east-1.amazonaws.com"


def test_artifact_tags_and_reference():
    artifact = Artifact(REGISTRY, "base-infra-dev", TEST_COMMIT_SHA.upper())

    assert artifact.commit_sha == TEST_COMMIT_SHA
    assert artifact.tags == (TEST_COMMIT_SHA, TEST_SHORT_SHA)
    assert artifact.image_uri == f"{REGISTRY}/base-infra-dev:{TEST_SHORT_SHA}"


@pytest.mark.parametrize("sha", ["", "abc", "not-a-commit-hash", "g" * 40])
def test_artifact_rejects_invalid_commit(sha):
    with pytest.raises(ValueError):
        Artifact(REGISTRY, "base-infra-dev", sha)


def test_verdict_reason_is_first_failure():
    checks = [
        CheckResult("liveness", True),
        CheckResult("content /", False, FailureReason.CONTENT_MISMATCH, "marker missing"),
        CheckResult("latency", False, FailureReason.LATENCY_EXCEEDED, "3.1s"),
        CheckResult("replicas", True),
    ]
    verdict = HealthVerdict.from_checks(checks)

    assert not verdict.healthy
    assert verdict.reason == FailureReason.CONTENT_MISMATCH
    assert verdict.failed_reasons == [FailureReason.CONTENT_MISMATCH, FailureReason.LATENCY_EXCEEDED]
    assert verdict.message == "content_mismatch: marker missing"


def test_skipped_checks_do_not_fail_the_verdict():
    checks = [CheckResult("liveness", True), CheckResult("smoke", False, skipped=True)]
    assert HealthVerdict.from_checks(checks).healthy


def test_health_check_error_carries_verdict():
    verdict = HealthVerdict.from_checks(
        [CheckResult("replicas", False, FailureReason.REPLICA_MISMATCH, "1/2 tasks running")])
    error = HealthCheckError(verdict, "qa")

    assert error.exit_code == 6
    assert str(error) == "[qa] replica_mismatch: 1/2 tasks running"


def test_deployment_record_round_trip():
    record = DeploymentRecord("qa", "repo:abc1234", "abc1234", "arn:td:2", "arn:td:1")
    restored = DeploymentRecord.from_dict(dict(record.to_dict(), unknown_field="ignored"))

    assert restored == record
    assert restored.is_current


def test_promotion_result_exit_code():
    result = PromotionResult(
        artifact=None,
        build=StageResult.success("build"),
        environments={
            "dev": StageResult.success("dev"),
            "qa": StageResult.fatal("qa", "stabilization timed out", exit_code=5),
            "prod": StageResult.skipped("prod", "blocked by qa"),
        },
    )

    assert not result.succeeded
    assert result.failed_stage.name == "qa"
    assert result.exit_code == 5
    assert result.environments["prod"].status == StageStatus.SKIPPED
