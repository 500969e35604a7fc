"""
Post-deployment health validation.

Probes an environment's public endpoint and its ECS replica counts and turns
the results into a HealthVerdict. Every failed check carries a named reason so
callers can tell a content mismatch from a slow response or a short replica
count.

Checks, in order:
    liveness   - GET /health, retried with fixed spacing
    content    - fixed substrings on known pages
    latency    - home page response time against the environment ceiling
    smoke      - /, /about.html and /health answer with HTTP success
    replicas   - running == desired and running > 0

Content, latency and smoke are skipped when liveness never succeeded. The
replica check always runs.
"""
import logging
import time
from typing import Callable, List, Optional, Union

import requests

from promoter.config.promotion import ContentCheck, HealthPolicy
from promoter.exceptions import PromotionError, TransientProbeError
from promoter.models import CheckResult, FailureReason, HealthVerdict, ReplicaCounts
from promoter.utils.decorators import log_execution_time, retry

logger = logging.getLogger(__name__)

ReplicaSource = Union[ReplicaCounts, Callable[[], ReplicaCounts]]


class HealthValidator:
    """Run the health checks for one environment endpoint."""

    def __init__(self, policy: HealthPolicy, session: Optional[requests.Session] = None,
                 sleep: Callable[[float], None] = time.sleep,
                 clock: Callable[[], float] = time.perf_counter):
        self.policy = policy
        self.session = session or requests.Session()
        self.sleep = sleep
        self.clock = clock

    def _get(self, url: str) -> requests.Response:
        """Single GET; any transport error or non-success status is transient."""
        try:
            response = self.session.get(url, timeout=self.policy.request_timeout)
        except requests.RequestException as e:
            raise TransientProbeError(f"{url} unreachable: {e}") from e
        if not response.ok:
            raise TransientProbeError(f"{url} returned HTTP {response.status_code}")
        return response

    def probe_liveness(self, base_url: str) -> CheckResult:
        """Probe the liveness path until it succeeds or attempts run out."""
        url = f"{base_url}{self.policy.liveness_path}"
        logger.info(f"Running health check against {url}")

        probe = retry(
            max_attempts=self.policy.attempts,
            delay=self.policy.retry_delay,
            backoff=1.0,
            exceptions=(TransientProbeError,),
            logger_name=__name__,
            sleep=self.sleep,
        )(self._get)

        try:
            probe(url)
        except TransientProbeError as e:
            return CheckResult(
                name="liveness",
                passed=False,
                reason=FailureReason.ENDPOINT_UNREACHABLE,
                detail=f"{url} failed {self.policy.attempts} attempts, last error: {e.message}",
            )

        logger.info("Health check passed!")
        return CheckResult(name="liveness", passed=True, detail=f"{url} is healthy")

    def check_content(self, base_url: str, check: ContentCheck) -> CheckResult:
        """Exact substring match against the body served at ``check.path``."""
        name = f"content {check.path}"
        url = f"{base_url}{check.path}"
        # Error pages still go through the substring test
        try:
            response = self.session.get(url, timeout=self.policy.request_timeout)
        except requests.RequestException as e:
            return CheckResult(name, False, FailureReason.ENDPOINT_UNREACHABLE, f"{url} unreachable: {e}")

        if check.expected in response.text:
            return CheckResult(name, True, detail=f"{check.path} content validated")
        return CheckResult(
            name, False, FailureReason.CONTENT_MISMATCH,
            f"{check.path} does not contain {check.expected!r}",
        )

    def check_latency(self, base_url: str, ceiling: float) -> CheckResult:
        """Home page must answer in less than ``ceiling`` seconds."""
        url = f"{base_url}{self.policy.latency_path}"
        start = self.clock()
        try:
            self.session.get(url, timeout=self.policy.request_timeout)
        except requests.Timeout:
            return CheckResult(
                "latency", False, FailureReason.LATENCY_EXCEEDED,
                f"No response within {self.policy.request_timeout:.0f}s (ceiling {ceiling:.2f}s)",
            )
        except requests.RequestException as e:
            return CheckResult("latency", False, FailureReason.ENDPOINT_UNREACHABLE, f"{url} unreachable: {e}")
        elapsed = self.clock() - start

        if elapsed < ceiling:
            return CheckResult("latency", True, detail=f"Response time acceptable: {elapsed:.3f}s")
        return CheckResult(
            "latency", False, FailureReason.LATENCY_EXCEEDED,
            f"Response time too slow: {elapsed:.3f}s (ceiling {ceiling:.2f}s)",
        )

    def check_smoke(self, base_url: str) -> CheckResult:
        """Every critical path must answer with HTTP success."""
        unreachable = []
        for path in self.policy.smoke_paths:
            try:
                self._get(f"{base_url}{path}")
            except TransientProbeError as e:
                logger.warning(f"❌ {path} is not accessible: {e.message}")
                unreachable.append(path)

        if unreachable:
            return CheckResult("smoke", False, FailureReason.ENDPOINT_UNREACHABLE,
                               f"not accessible: {', '.join(unreachable)}")
        return CheckResult("smoke", True,
                           detail=f"accessible: {', '.join(self.policy.smoke_paths)}")

    @staticmethod
    def check_replicas(counts: ReplicaCounts) -> CheckResult:
        """Running tasks must equal desired tasks and be more than zero."""
        summary = f"{counts.running}/{counts.desired} tasks running"
        if counts.running == counts.desired and counts.running > 0:
            return CheckResult("replicas", True, detail=f"ECS service healthy: {summary}")
        return CheckResult("replicas", False, FailureReason.REPLICA_MISMATCH,
                           f"ECS service unhealthy: {summary}")

    def _replica_check(self, replicas: ReplicaSource) -> CheckResult:
        if isinstance(replicas, ReplicaCounts):
            return self.check_replicas(replicas)
        try:
            return self.check_replicas(replicas())
        except PromotionError as e:
            return CheckResult("replicas", False, FailureReason.REPLICA_MISMATCH,
                               f"could not read replica counts: {e}")

    @log_execution_time
    def validate(self, endpoint: Optional[str], latency_ceiling: float,
                 replicas: ReplicaSource, settle: bool = True) -> HealthVerdict:
        """Run every check and return the verdict.

        Args:
            endpoint: Base URL such as ``http://my-alb.elb.amazonaws.com``;
                None when no load balancer could be found.
            latency_ceiling: Maximum home page response time in seconds.
            replicas: Replica counts, or a callable returning them once the
                HTTP checks are done.
            settle: Wait ``policy.initial_delay`` before the first probe.
        """
        checks: List[CheckResult] = []

        if endpoint is None:
            checks.append(CheckResult("endpoint", False, FailureReason.ENDPOINT_NOT_FOUND,
                                      "Could not find load balancer DNS name"))
            reachable = False
        else:
            if settle and self.policy.initial_delay > 0:
                logger.info(f"Waiting {self.policy.initial_delay:.0f}s for the service to be ready")
                self.sleep(self.policy.initial_delay)
            liveness = self.probe_liveness(endpoint)
            checks.append(liveness)
            reachable = liveness.passed

        http_checks = [f"content {c.path}" for c in self.policy.content_checks] + ["latency", "smoke"]
        if reachable:
            for content_check in self.policy.content_checks:
                checks.append(self.check_content(endpoint, content_check))
            checks.append(self.check_latency(endpoint, latency_ceiling))
            checks.append(self.check_smoke(endpoint))
        else:
            for name in http_checks:
                checks.append(CheckResult(name, False, detail="skipped: endpoint not reachable",
                                          skipped=True))

        checks.append(self._replica_check(replicas))

        verdict = HealthVerdict.from_checks(checks, endpoint=endpoint)
        if verdict.healthy:
            logger.info(f"✅ All health checks passed for {endpoint}")
        else:
            for failure in verdict.failures:
                logger.error(f"❌ {failure.name}: {failure.reason.value} - {failure.detail}")
        return verdict
