import pytest

from pctbatch.errors import ConfigurationError
from pctbatch.services.targets import TargetResolver


def test_resolver_preserves_order_and_duplicates():
    targets = TargetResolver().resolve(["102", "100", "102"])

    assert [target.ctid for target in targets] == ["102", "100", "102"]
    assert [target.position for target in targets] == [0, 1, 2]
    assert targets[0] != targets[2]


def test_resolver_rejects_empty_list():
    with pytest.raises(ConfigurationError, match="No container IDs"):
        TargetResolver().resolve([])


@pytest.mark.parametrize("raw", ["abc", "0", "-5", "10.5", ""])
def test_resolver_rejects_malformed_ids(raw):
    with pytest.raises(ConfigurationError, match="Invalid container ID"):
        TargetResolver().resolve(["100", raw])
