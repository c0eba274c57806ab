"""Parse raw npm audit / npm outdated output into normalized reports."""

import json
import logging
from typing import Optional

from pydantic import ValidationError

from auditbot.audit.formatting import NVD_URL, code_line, italic, plural
from auditbot.audit.schemas import (
    Advisory,
    AuditReport,
    Finding,
    OutdatedDependency,
    RawAdvisory,
    RawAuditOutput,
    RawAuditOutputV2,
    RawFixAvailable,
    RawVulnerability,
    RemediationAction,
    Resolution,
    RootVulnerability,
)
from auditbot.audit.severity import severity_rank

logger = logging.getLogger(__name__)

PATH_SEPARATOR = ">"
REPORT_VERSION_2 = 2


def slice_report(output: str) -> str:
    """Cut a JSON object out of process output polluted with log noise.

    Keeps everything from the first ``{`` to the last ``}``.
    """
    start = output.find("{")
    end = output.rfind("}")
    if start == -1 or end < start:
        return ""
    return output[start : end + 1]


def load_report_json(output: str) -> Optional[dict]:
    """Slice and decode tool output; ``None`` when it is not a JSON object."""
    try:
        data = json.loads(slice_report(output))
    except json.JSONDecodeError as e:
        logger.error("Failed to parse npm output '%s': %s", output[:500], e)
        return None
    return data if isinstance(data, dict) else None


def _render_details(advisory: RawAdvisory, actions: list[RemediationAction]) -> str:
    details = f"[{advisory.title}]({advisory.url})"
    if advisory.recommendation and advisory.recommendation.strip():
        recommendation = advisory.recommendation.strip().removesuffix(".")
        details = f"{details} {italic(recommendation)}"
    details = f"{details}\n{advisory.severity} - {code_line(advisory.vulnerable_versions)}"
    if advisory.cves:
        cves = " ".join(f"[{c}]({NVD_URL.format(cve=c)})" for c in advisory.cves)
        details = f"{details} - {cves}"
    if any(r.advisory_id == advisory.id for a in actions for r in a.resolves):
        details = f"{details} - automatic fix available"
    if advisory.findings:
        findings = []
        for finding in advisory.findings:
            paths = "\n".join(
                f"  <li><code>{p.replace(PATH_SEPARATOR, ' > ')}</code></li>"
                for p in sorted(finding.paths)
            )
            findings.append(
                "\n<details>\n"
                f"  <summary><code>{advisory.module_name}@{finding.version}</code> - "
                f"{len(finding.paths)} vulnerable {plural(len(finding.paths), 'path', 'paths')}</summary>\n"
                f"{paths}\n"
                "</details>"
            )
        details = f"{details}\n{''.join(findings)}\n"
    return details


def _flatten_roots(advisory: RawAdvisory) -> list[RootVulnerability]:
    roots = []
    for finding in advisory.findings:
        for path in finding.paths:
            segments = path.split(PATH_SEPARATOR)
            roots.append(
                RootVulnerability(
                    advisory_id=advisory.id,
                    severity=advisory.severity,
                    top_level_module=segments[0],
                    vulnerable_module=segments[-1],
                    vulnerable_version=finding.version,
                )
            )
    return roots


def normalize_report(raw: RawAuditOutput) -> AuditReport:
    """Build the normalized report from a validated audit document."""
    advisories = [
        Advisory(
            id=a.id,
            module=a.module_name,
            severity=a.severity,
            details=_render_details(a, raw.actions),
            cves=a.cves,
            updated=a.updated,
        )
        for a in raw.advisories.values()
    ]
    # Most recently updated first, then stable sort by severity
    advisories.sort(key=lambda a: a.updated, reverse=True)
    advisories.sort(key=lambda a: severity_rank(a.severity))

    roots = [root for a in raw.advisories.values() for root in _flatten_roots(a)]
    return AuditReport(
        advisories=advisories,
        actions=raw.actions,
        roots=roots,
        vulnerabilities=raw.metadata.vulnerabilities,
    )


def _dependency_paths(
    name: str,
    vulnerabilities: dict[str, RawVulnerability],
    seen: frozenset = frozenset(),
) -> list[str]:
    """Paths from direct dependencies down to ``name``, walking ``effects`` upwards."""
    vulnerability = vulnerabilities.get(name)
    if vulnerability is None:
        return [name]
    seen = seen | {name}
    paths = [name] if vulnerability.is_direct else []
    for parent in vulnerability.effects:
        if parent in seen:
            continue
        paths.extend(
            f"{path}{PATH_SEPARATOR}{name}"
            for path in _dependency_paths(parent, vulnerabilities, seen)
        )
    return paths or [name]


def _advisory_ids(
    name: str,
    vulnerabilities: dict[str, RawVulnerability],
    seen: frozenset = frozenset(),
) -> set[int]:
    vulnerability = vulnerabilities.get(name)
    if vulnerability is None or name in seen:
        return set()
    ids = set()
    for via in vulnerability.via:
        if isinstance(via, str):
            ids |= _advisory_ids(via, vulnerabilities, seen | {name})
        else:
            ids.add(via.source)
    return ids


def convert_report_v2(raw: RawAuditOutputV2) -> RawAuditOutput:
    """Express an npm 7+ report as advisories and actions.

    A ``fixAvailable`` object becomes an ``install`` of that package and
    version. ``fixAvailable: true`` becomes an ``update`` of each package an
    advisory points at directly.
    """
    vulnerabilities = raw.vulnerabilities
    advisories: dict[str, RawAdvisory] = {}
    actions: dict[tuple[str, str, str], RemediationAction] = {}

    for vulnerability in vulnerabilities.values():
        direct_advisories = [v for v in vulnerability.via if not isinstance(v, str)]
        if direct_advisories:
            paths = sorted(set(_dependency_paths(vulnerability.name, vulnerabilities)))
            for via in direct_advisories:
                advisories.setdefault(
                    str(via.source),
                    RawAdvisory(
                        id=via.source,
                        module_name=via.dependency or via.name,
                        severity=via.severity,
                        title=via.title,
                        url=via.url,
                        vulnerable_versions=via.range,
                        findings=[Finding(version=vulnerability.range, paths=paths)],
                    ),
                )

        fix = vulnerability.fix_available
        if isinstance(fix, RawFixAvailable):
            key = ("install", fix.name, fix.version)
            is_major = fix.is_semver_major
        elif fix is True and direct_advisories:
            key = ("update", vulnerability.name, "")
            is_major = False
        else:
            continue

        action = actions.setdefault(
            key,
            RemediationAction(module=key[1], action=key[0], target=key[2], is_major=is_major),
        )
        known = {r.advisory_id for r in action.resolves}
        ids = _advisory_ids(vulnerability.name, vulnerabilities) - known
        action.resolves.extend(Resolution(advisory_id=i) for i in sorted(ids))

    return RawAuditOutput(advisories=advisories, actions=list(actions.values()), metadata=raw.metadata)


def normalize_document(data: dict) -> AuditReport:
    """Normalize a decoded npm 6 or npm 7+ audit document.

    Raises:
        ValidationError: If the document matches neither shape.
    """
    if data.get("auditReportVersion") == REPORT_VERSION_2:
        raw = convert_report_v2(RawAuditOutputV2.model_validate(data))
    else:
        raw = RawAuditOutput.model_validate(data)
    return normalize_report(raw)


def parse_audit_report(output: str) -> AuditReport:
    """Parse ``npm audit --json`` output, tolerating surrounding noise.

    Malformed output yields an empty report instead of raising.
    """
    data = load_report_json(output)
    if data is None:
        return AuditReport()
    try:
        return normalize_document(data)
    except ValidationError as e:
        logger.error("npm audit output did not match the expected schema: %s", e)
        return AuditReport()


def parse_outdated(output: str, dev_dependencies: Optional[set[str]] = None) -> list[OutdatedDependency]:
    """Parse ``npm outdated --json`` into dependencies whose wanted != current."""
    if not slice_report(output):
        # npm prints nothing when everything is up to date
        return []
    data = load_report_json(output) or {}
    dev_dependencies = dev_dependencies or set()
    outdated = []
    for name, info in sorted(data.items()):
        if not isinstance(info, dict) or info.get("wanted") == info.get("current"):
            continue
        outdated.append(
            OutdatedDependency(
                name=name,
                current=info.get("current"),
                wanted=info.get("wanted"),
                latest=info.get("latest"),
                dev=name in dev_dependencies,
            )
        )
    return outdated
