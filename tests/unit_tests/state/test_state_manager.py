import json
import threading

import pytest

from deployment.aws.state.state_manager import StateManager
from promoter.exceptions import PromotionError
from promoter.models import DeploymentRecordStatus


@pytest.fixture
def ledger(tmp_path):
    return StateManager(str(tmp_path / "ledger.json"))


def apply(ledger, environment, revision, previous=None):
    return ledger.record_applied(
        environment=environment,
        image=f"repo:rev{revision}",
        commit_sha=f"{revision:07d}",
        task_definition_arn=f"arn:td/base-infra-{environment}:{revision}",
        previous_task_definition_arn=previous,
    )


def test_new_record_supersedes_current(ledger):
    first = apply(ledger, "qa", 1)
    second = apply(ledger, "qa", 2, previous=first.task_definition_arn)

    assert ledger.current("qa").record_id == second.record_id
    assert ledger.get(first.record_id).superseded_by == second.record_id
    assert ledger.predecessor(second.record_id).record_id == first.record_id


def test_records_are_never_deleted(ledger):
    for revision in range(1, 4):
        apply(ledger, "qa", revision)
    apply(ledger, "dev", 1)

    history = ledger.history("qa")
    assert [r.task_definition_arn for r in history] == [
        "arn:td/base-infra-qa:3", "arn:td/base-infra-qa:2", "arn:td/base-infra-qa:1"]
    assert len(ledger.history()) == 4
    assert ledger.current("dev").environment == "dev"


def test_status_updates_persist(ledger, tmp_path):
    record = apply(ledger, "prod", 1)
    ledger.update_status(record.record_id, DeploymentRecordStatus.STABLE)
    ledger.update_status(record.record_id, DeploymentRecordStatus.FAILED, "latency_exceeded: 1.9s")

    reloaded = StateManager(str(tmp_path / "ledger.json"))
    stored = reloaded.get(record.record_id)
    assert stored.status == "failed"
    assert stored.reason == "latency_exceeded: 1.9s"


def test_unknown_record(ledger):
    with pytest.raises(PromotionError, match="Unknown deployment record"):
        ledger.get("missing")


def test_corrupt_ledger_is_reported(tmp_path):
    path = tmp_path / "ledger.json"
    path.write_text("{not json")

    with pytest.raises(PromotionError, match="Could not read"):
        StateManager(str(path))


def test_concurrent_environments_share_one_ledger(ledger, tmp_path):
    threads = [threading.Thread(target=apply, args=(ledger, env, 1)) for env in ("perf", "uat")]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    data = json.loads((tmp_path / "ledger.json").read_text())
    assert sorted(r["environment"] for r in data["records"]) == ["perf", "uat"]
