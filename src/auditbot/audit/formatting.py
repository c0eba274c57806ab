"""Markdown rendering for advisories, checks and pull request bodies."""

import re
from typing import NamedTuple

from auditbot.audit.schemas import Advisory, OutdatedDependency, RemediationAction, VulnerabilityCounts

NVD_URL = "https://nvd.nist.gov/vuln/detail/{cve}"


def code_line(text: str) -> str:
    return f"`{text}`"


def italic(text: str) -> str:
    return f"_{text}_"


def join_with_and(parts: list[str]) -> str:
    """Join items as "a, b and c"."""
    return re.sub(r", ([^,]*)$", r" and \1", ", ".join(parts))


def plural(count: int, singular: str, many: str) -> str:
    return singular if count == 1 else many


class VulnerabilitySummary(NamedTuple):
    parts: list[str]
    msg: str
    count: int


def format_vulnerabilities(counts: VulnerabilityCounts) -> VulnerabilitySummary:
    """Summarize counts as "1 critical, 2 high and 3 low"."""
    parts = []
    count = 0
    for level in ("critical", "high", "moderate", "low", "info"):
        value = getattr(counts, level)
        if value > 0:
            parts.append(f"{value} {level}")
            count += value
    return VulnerabilitySummary(parts=parts, msg=join_with_and(parts), count=count)


def format_advisory_group(module: str, advisories: list[Advisory]) -> str:
    details = "\n\n".join(a.details for a in advisories)
    return f"\n### {module}\n\n{details}"


def group_and_render(advisories: list[Advisory]) -> str:
    """Render one section per module, modules in order of first appearance."""
    order: dict[str, list[Advisory]] = {}
    for advisory in advisories:
        order.setdefault(advisory.module, []).append(advisory)
    return "\n---\n".join(
        format_advisory_group(module, group) for module, group in order.items()
    )


def format_check_body(
    counts: VulnerabilityCounts,
    args: list[str],
    included: list[Advisory],
    excluded: list[Advisory],
) -> str:
    """Body of the audit check when vulnerabilities were found."""
    summary = format_vulnerabilities(counts)
    body = (
        f"`npm audit` found {summary.msg} security "
        f"{plural(summary.count, 'vulnerability', 'vulnerabilities')}.\n\n"
        f"`$ npm audit {' '.join(args)}`\n\n---\n\n"
        f"Following security {plural(len(included), 'advisory was', 'advisories were')} found:\n"
        f"{group_and_render(included)}"
    )
    if excluded:
        body += (
            f"\n---\n\nFollowing security {plural(len(excluded), 'advisory', 'advisories')} "
            f"were excluded due to configuration:\n{group_and_render(excluded)}"
        )
    return body


def format_pr_summary(before: VulnerabilityCounts, after: VulnerabilityCounts, sha: str) -> str:
    """Opening sentence of the remediation pull request."""
    before_stats = format_vulnerabilities(before)
    diff_stats = format_vulnerabilities(
        VulnerabilityCounts(
            critical=before.critical - after.critical,
            high=before.high - after.high,
            moderate=before.moderate - after.moderate,
            low=before.low - after.low,
            info=before.info - after.info,
        )
    )
    after_stats = format_vulnerabilities(after)
    short_sha = sha[:7]
    if not after_stats.parts:
        return (
            f"This pull request fixes all [{before_stats.msg} security "
            f"{plural(before_stats.count, 'vulnerability', 'vulnerabilities')}]"
            f"(#user-content-fixed-vul) open on {short_sha}."
        )
    remains = (
        "vulnerability](#user-content-open-vul) remains open and needs"
        if after_stats.count == 1
        else "vulnerabilities](#user-content-open-vul) remain open and need"
    )
    return (
        f"This pull request fixes [{diff_stats.msg} security "
        f"{plural(diff_stats.count, 'vulnerability', 'vulnerabilities')}]"
        f"(#user-content-fixed-vul) open on {short_sha} but [{after_stats.msg} {remains} manual review."
    )


def format_pr_body(
    before: VulnerabilityCounts,
    after: VulnerabilityCounts,
    sha: str,
    actions: list[RemediationAction],
    fixed: list[Advisory],
    still_open: list[Advisory],
) -> str:
    """Full body of the security remediation pull request."""
    updated = sorted({f" * {code_line(a.module)} > {italic(a.target)}" for a in actions})
    body = (
        f"{format_pr_summary(before, after, sha)}\n\n"
        f"`npm audit fix` updated the following npm packages:\n\n"
        + "\n".join(updated)
        + "\n\n---\n\n"
        '## <a id="fixed-vul">Fixed vulnerabilities</a>\n\n'
        f"Following security {plural(len(fixed), 'vulnerability is', 'vulnerabilities are')} fixed:\n"
        f"{group_and_render(fixed)}"
    )
    if still_open:
        body += (
            "\n---\n\n"
            '## <a id="open-vul">Open vulnerabilities</a>\n\n'
            "Following security "
            f"{plural(len(still_open), 'vulnerability remains open and needs', 'vulnerabilities remain open and need')}"
            f" manual review:\n{group_and_render(still_open)}"
        )
    return body


def format_update_body(updates: list[OutdatedDependency]) -> str:
    """Body of the outdated-dependency update pull request."""
    sections = ["This pull request updates the following npm dependencies to their wanted versions."]
    for dev, title in ((False, "Dependencies"), (True, "Development Dependencies")):
        group = sorted((u for u in updates if u.dev == dev), key=lambda u: u.name)
        if group:
            lines = "\n".join(
                f" * {code_line(u.name)} {u.current or 'missing'} > {italic(u.wanted or '')}"
                for u in group
            )
            sections.append(f"### {title}\n\n{lines}")
    return "\n\n".join(sections)
