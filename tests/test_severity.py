"""Tests for severity filtering and exclusion."""

import pytest

from auditbot.audit.schemas import Advisory
from auditbot.audit.severity import filter_by_level, partition_by_exclusion, severity_rank


def _advisory(id: int, module: str, severity: str) -> Advisory:
    return Advisory(id=id, module=module, severity=severity, details=f"details of {id}")


class TestFilterByLevel:
    def test_high_threshold_admits_critical_rejects_info(self):
        admit = filter_by_level("high")
        assert admit(_advisory(1, "a", "critical"))
        assert admit(_advisory(2, "b", "high"))
        assert not admit(_advisory(3, "c", "moderate"))
        assert not admit(_advisory(4, "d", "info"))

    def test_unset_threshold_admits_everything(self):
        admit = filter_by_level(None)
        assert admit(_advisory(1, "a", "critical"))
        assert admit(_advisory(2, "b", "info"))

    def test_unknown_level_raises(self):
        with pytest.raises(ValueError):
            filter_by_level("severe")

    def test_rank_orders_critical_first(self):
        assert severity_rank("critical") < severity_rank("high") < severity_rank("info")


class TestPartitionByExclusion:
    def test_excluded_package_goes_to_excluded_group(self):
        advisories = [_advisory(1, "lodash", "high"), _advisory(2, "minimist", "low")]
        included, excluded = partition_by_exclusion(advisories, ["lodash"], [])

        assert [a.id for a in included] == [2]
        assert [a.id for a in excluded] == [1]

    def test_excluded_advisory_id_matches_as_string(self):
        advisories = [_advisory(1179, "minimist", "moderate"), _advisory(7, "minimist", "low")]
        included, excluded = partition_by_exclusion(advisories, [], ["1179"])

        assert [a.id for a in included] == [7]
        assert [a.id for a in excluded] == [1179]

    def test_nothing_excluded(self):
        advisories = [_advisory(1, "a", "low")]
        included, excluded = partition_by_exclusion(advisories, [], [])
        assert included == advisories
        assert excluded == []
