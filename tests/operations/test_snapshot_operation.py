import pytest

from pctbatch.errors import ConfigurationError
from pctbatch.models import OperationRequest, OutcomeKind, Target
from pctbatch.operations.snapshot import SnapshotOperation, SnapshotParams


def request_for(action, name="pre-upgrade", description=None):
    return OperationRequest("snapshot", SnapshotParams(action=action, name=name, description=description))


def test_create_then_create_again_is_skipped(fake_host, make_operation):
    container = fake_host.add(100, status="stopped")
    operation = make_operation(SnapshotOperation)

    first = operation.execute(Target("100", 0), request_for("create", description="before upgrade"))
    second = operation.execute(Target("100", 0), request_for("create"))

    assert first.kind == OutcomeKind.SUCCESS
    assert first.detail == "snapshot 'pre-upgrade' created"
    assert second.kind == OutcomeKind.SKIPPED
    assert second.detail == "snapshot already exists"
    assert container.snapshots == ["pre-upgrade"]
    assert [
        "pct",
        "snapshot",
        "100",
        "pre-upgrade",
        "--description",
        "before upgrade",
    ] in fake_host.commands_for(100)


def test_delete_missing_snapshot_is_skipped(fake_host, make_operation):
    fake_host.add(100)

    outcome = make_operation(SnapshotOperation).execute(Target("100", 0), request_for("delete"))

    assert outcome.kind == OutcomeKind.SKIPPED
    assert outcome.detail == "snapshot not present"


def test_delete_existing_snapshot(fake_host, make_operation):
    container = fake_host.add(100)
    container.snapshots = ["nightly", "pre-upgrade"]

    outcome = make_operation(SnapshotOperation).execute(Target("100", 0), request_for("delete"))

    assert outcome.detail == "snapshot 'pre-upgrade' deleted"
    assert container.snapshots == ["nightly"]


@pytest.mark.parametrize("name", ["1abc", "with space", "x", "current!"])
def test_validate_rejects_bad_names(name, make_operation):
    with pytest.raises(ConfigurationError, match="Invalid snapshot name"):
        make_operation(SnapshotOperation).validate(request_for("create", name=name))
