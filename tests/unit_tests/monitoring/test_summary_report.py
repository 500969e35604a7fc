import os
import time

from deployment.aws.monitoring import summary_report
from promoter.models import CheckResult, FailureReason, HealthVerdict
from tests.consts import TEST_ENDPOINT

PASSED = HealthVerdict.from_checks(
    [CheckResult("liveness", True, detail="healthy"),
     CheckResult("replicas", True, detail="ECS service healthy: 2/2 tasks running")],
    endpoint=TEST_ENDPOINT,
)
FAILED = HealthVerdict.from_checks(
    [CheckResult("liveness", True, detail="healthy"),
     CheckResult("replicas", False, FailureReason.REPLICA_MISMATCH, "ECS service unhealthy: 1/2 tasks running")],
    endpoint=TEST_ENDPOINT,
)


def test_render_passed_summary():
    text = summary_report.render_summary("dev", PASSED, image="repo:3f2a9c1")

    assert "🧪 Starting comprehensive testing for DEV environment" in text
    assert "✅ replicas: ECS service healthy: 2/2 tasks running" in text
    assert "🎉 All DEV environment tests passed!" in text


def test_render_failed_summary_names_reason():
    text = summary_report.render_summary("qa", FAILED)

    assert "❌ replicas (replica_mismatch)" in text
    assert "QA validation failed: replica_mismatch" in text


def test_write_summary_file_and_step_summary(tmp_path, monkeypatch):
    step_summary = tmp_path / "step_summary.md"
    monkeypatch.setenv("GITHUB_STEP_SUMMARY", str(step_summary))

    path = summary_report.write_summary(str(tmp_path / "out"), "qa", FAILED)

    assert path.name == "qa-test-results-summary.md"
    assert "replica_mismatch" in path.read_text()
    assert "replica_mismatch" in step_summary.read_text()


def test_github_output_only_when_configured(tmp_path):
    output = tmp_path / "output"

    assert not summary_report.write_github_output("image", "repo:abc1234", environ={})
    assert summary_report.write_github_output("image", "repo:abc1234",
                                              environ={"GITHUB_OUTPUT": str(output)})
    assert output.read_text() == "image=repo:abc1234\n"


def test_prune_keeps_recent_summaries(tmp_path):
    now = time.time()
    old = tmp_path / "dev-test-results-summary.md"
    recent = tmp_path / "qa-test-results-summary.md"
    unrelated = tmp_path / "notes.md"
    for path in (old, recent, unrelated):
        path.write_text("x")
    eight_days_ago = now - 8 * 24 * 60 * 60
    os.utime(old, (eight_days_ago, eight_days_ago))
    os.utime(unrelated, (eight_days_ago, eight_days_ago))

    removed = summary_report.prune_expired(str(tmp_path), retention_days=7, now=now)

    assert removed == [old]
    assert recent.exists()
    assert unrelated.exists()


def test_aggregate_concatenates_summaries(tmp_path):
    summary_report.write_summary(str(tmp_path), "dev", PASSED)
    summary_report.write_summary(str(tmp_path), "qa", FAILED)

    report = summary_report.aggregate(str(tmp_path))

    assert report.index("DEV test results") < report.index("QA test results")


def test_aggregate_without_summaries(tmp_path):
    assert summary_report.aggregate(str(tmp_path / "missing")) == "No test results summaries found.\n"
