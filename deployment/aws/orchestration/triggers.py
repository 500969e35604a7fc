"""Decide whether a CI event should start the promotion chain."""
import fnmatch
import logging
from dataclasses import dataclass
from typing import Iterable, Optional, Tuple

logger = logging.getLogger(__name__)

MANUAL_EVENT = "workflow_dispatch"
PUSH_EVENT = "push"
PULL_REQUEST_EVENT = "pull_request"


def _branch_name(ref: Optional[str]) -> Optional[str]:
    if ref and ref.startswith("refs/heads/"):
        return ref[len("refs/heads/"):]
    return ref


@dataclass(frozen=True)
class TriggerPolicy:
    """Branch and path filters for the promotion workflow.

    Runs on a push to ``branch`` or a pull request against it that touches
    one of ``paths``, and always on manual dispatch.
    """
    branch: str = "main"
    paths: Tuple[str, ...] = ("application/**",)

    def matches_paths(self, changed_files: Optional[Iterable[str]]) -> bool:
        # Unknown change set: let the chain run
        if changed_files is None:
            return True
        return any(
            fnmatch.fnmatch(path, pattern)
            for path in changed_files
            for pattern in self.paths
        )

    def should_run(self, event_name: str, ref: Optional[str] = None,
                   changed_files: Optional[Iterable[str]] = None,
                   base_ref: Optional[str] = None) -> bool:
        """Return True when ``event_name`` should start the chain."""
        if event_name == MANUAL_EVENT:
            logger.info("Manual dispatch: running promotion")
            return True

        if event_name == PUSH_EVENT:
            target = _branch_name(ref)
        elif event_name == PULL_REQUEST_EVENT:
            target = _branch_name(base_ref)
        else:
            logger.info(f"Event {event_name} does not trigger promotion")
            return False

        if target != self.branch:
            logger.info(f"{event_name} targets {target}, not {self.branch}: skipping")
            return False

        if not self.matches_paths(changed_files):
            logger.info(f"No changes under {', '.join(self.paths)}: skipping")
            return False
        return True
