"""Tests for markdown rendering."""

from auditbot.audit.formatting import (
    format_check_body,
    format_pr_body,
    format_pr_summary,
    format_update_body,
    format_vulnerabilities,
    group_and_render,
    join_with_and,
)
from auditbot.audit.schemas import Advisory, OutdatedDependency, RemediationAction, VulnerabilityCounts


def _advisory(id: int, module: str) -> Advisory:
    return Advisory(id=id, module=module, severity="high", details=f"advisory {id}")


class TestFormatVulnerabilities:
    def test_joins_with_final_and(self):
        summary = format_vulnerabilities(VulnerabilityCounts(critical=1, high=2, low=3))
        assert summary.msg == "1 critical, 2 high and 3 low"
        assert summary.count == 6

    def test_single_part(self):
        assert format_vulnerabilities(VulnerabilityCounts(moderate=4)).msg == "4 moderate"

    def test_empty(self):
        summary = format_vulnerabilities(VulnerabilityCounts())
        assert summary.parts == []
        assert summary.count == 0

    def test_join_with_and_two_items(self):
        assert join_with_and(["a", "b"]) == "a and b"


class TestGroupAndRender:
    def test_groups_by_module_in_first_appearance_order(self):
        rendered = group_and_render([_advisory(1, "b"), _advisory(2, "a"), _advisory(3, "b")])
        assert rendered == "\n### b\n\nadvisory 1\n\nadvisory 3\n---\n\n### a\n\nadvisory 2"


class TestCheckBody:
    def test_excluded_section_only_when_excluded(self):
        counts = VulnerabilityCounts(high=1)
        body = format_check_body(counts, [], [_advisory(1, "a")], [])
        assert "excluded due to configuration" not in body

        body = format_check_body(counts, ["--production"], [_advisory(1, "a")], [_advisory(2, "b")])
        assert "`$ npm audit --production`" in body
        assert "Following security advisory were excluded due to configuration" in body
        assert body.index("### a") < body.index("### b")


class TestPrBody:
    def test_fixes_all(self):
        summary = format_pr_summary(VulnerabilityCounts(moderate=1), VulnerabilityCounts(), "abcdef123")
        assert summary == (
            "This pull request fixes all [1 moderate security vulnerability]"
            "(#user-content-fixed-vul) open on abcdef1."
        )

    def test_partial_fix_mentions_open(self):
        summary = format_pr_summary(
            VulnerabilityCounts(high=2, low=1), VulnerabilityCounts(low=1), "abcdef123"
        )
        assert "fixes [2 high security vulnerabilities]" in summary
        assert "[1 low vulnerability](#user-content-open-vul) remains open and needs manual review." in summary

    def test_open_section_absent_when_all_fixed(self):
        action = RemediationAction(module="minimist", action="update", target="1.2.6")
        body = format_pr_body(
            VulnerabilityCounts(moderate=1),
            VulnerabilityCounts(),
            "abcdef123",
            [action],
            [_advisory(1179, "minimist")],
            [],
        )
        assert " * `minimist` > _1.2.6_" in body
        assert '<a id="fixed-vul">Fixed vulnerabilities</a>' in body
        assert "Following security vulnerability is fixed:" in body
        assert "open-vul\">Open vulnerabilities" not in body

    def test_open_section_present_when_some_remain(self):
        body = format_pr_body(
            VulnerabilityCounts(high=2),
            VulnerabilityCounts(high=1),
            "abcdef123",
            [],
            [_advisory(1, "a")],
            [_advisory(2, "b")],
        )
        assert '<a id="open-vul">Open vulnerabilities</a>' in body
        assert "vulnerability remains open and needs manual review" in body


class TestUpdateBody:
    def test_runtime_and_dev_sections(self):
        body = format_update_body(
            [
                OutdatedDependency(name="lodash", current="4.17.15", wanted="4.17.21"),
                OutdatedDependency(name="jest", current="26.0.0", wanted="26.6.3", dev=True),
            ]
        )
        assert "### Dependencies\n\n * `lodash` 4.17.15 > _4.17.21_" in body
        assert "### Development Dependencies\n\n * `jest` 26.0.0 > _26.6.3_" in body

    def test_omits_empty_section(self):
        body = format_update_body([OutdatedDependency(name="lodash", current="1", wanted="2")])
        assert "Development Dependencies" not in body
