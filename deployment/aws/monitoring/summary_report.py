"""
Test results summaries.

Each validation attempt leaves a Markdown file named
``<env>-test-results-summary.md``. Files older than the retention window are
pruned and the remaining ones can be concatenated for a final report. When
running under GitHub Actions the same lines are appended to the step summary.
"""
import logging
import os
import time
from pathlib import Path
from typing import List, Mapping, Optional

from promoter.models import CheckResult, HealthVerdict

logger = logging.getLogger(__name__)

SUMMARY_SUFFIX = "-test-results-summary.md"
SECONDS_PER_DAY = 24 * 60 * 60


def summary_filename(environment: str) -> str:
    return f"{environment}{SUMMARY_SUFFIX}"


def _check_line(check: CheckResult) -> str:
    if check.skipped:
        return f"⏭️ {check.name}: {check.detail}"
    if check.passed:
        return f"✅ {check.name}: {check.detail}"
    return f"❌ {check.name} ({check.reason.value}): {check.detail}"


def render_summary(environment: str, verdict: HealthVerdict, image: Optional[str] = None) -> str:
    """Markdown summary of one validation attempt."""
    env_label = environment.upper()
    lines = [f"## {env_label} test results", ""]
    if verdict.endpoint:
        lines.append(f"🧪 Starting comprehensive testing for {env_label} environment: {verdict.endpoint}")
    if image:
        lines.append(f"📦 Image: {image}")
    lines.append("")

    for check in verdict.checks:
        lines.append(f"- {_check_line(check)}")
    lines.append("")

    if verdict.healthy:
        lines.append(f"🎉 All {env_label} environment tests passed!")
    else:
        lines.append(f"❌ {env_label} validation failed: {verdict.reason.value}")
    return "\n".join(lines) + "\n"


def write_summary(directory: str, environment: str, verdict: HealthVerdict,
                  image: Optional[str] = None) -> Path:
    """Write ``<env>-test-results-summary.md`` into ``directory``."""
    path = Path(directory) / summary_filename(environment)
    path.parent.mkdir(parents=True, exist_ok=True)
    content = render_summary(environment, verdict, image)
    path.write_text(content, encoding="utf-8")
    logger.info(f"📝 Wrote test results summary: {path}")
    append_step_summary(content)
    return path


def append_step_summary(text: str, environ: Optional[Mapping[str, str]] = None) -> bool:
    """Append ``text`` to ``$GITHUB_STEP_SUMMARY`` when it is set."""
    environ = os.environ if environ is None else environ
    target = environ.get("GITHUB_STEP_SUMMARY")
    if not target:
        return False
    with open(target, "a", encoding="utf-8") as f:
        f.write(text if text.endswith("\n") else f"{text}\n")
    return True


def write_github_output(key: str, value: str, environ: Optional[Mapping[str, str]] = None) -> bool:
    """Append ``key=value`` to ``$GITHUB_OUTPUT`` when it is set."""
    environ = os.environ if environ is None else environ
    target = environ.get("GITHUB_OUTPUT")
    if not target:
        return False
    with open(target, "a", encoding="utf-8") as f:
        f.write(f"{key}={value}\n")
    return True


def list_summaries(directory: str) -> List[Path]:
    root = Path(directory)
    if not root.is_dir():
        return []
    return sorted(root.glob(f"*{SUMMARY_SUFFIX}"))


def prune_expired(directory: str, retention_days: int, now: Optional[float] = None) -> List[Path]:
    """Delete summaries last modified more than ``retention_days`` ago."""
    now = time.time() if now is None else now
    cutoff = now - retention_days * SECONDS_PER_DAY
    removed = []
    for path in list_summaries(directory):
        if path.stat().st_mtime < cutoff:
            path.unlink()
            removed.append(path)
            logger.info(f"🧹 Removed expired summary {path.name}")
    return removed


def aggregate(directory: str) -> str:
    """Concatenate the retained summaries into one report."""
    summaries = list_summaries(directory)
    if not summaries:
        return "No test results summaries found.\n"
    parts = [path.read_text(encoding="utf-8").rstrip("\n") for path in summaries]
    return "\n\n".join(parts) + "\n"
