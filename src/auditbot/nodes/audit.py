"""Audit step: run npm audit, record fingerprints, compute remediation actions."""

import re
from itertools import groupby

from pydantic import ValidationError

from auditbot.audit.formatting import format_check_body, format_vulnerabilities, join_with_and
from auditbot.audit.report import load_report_json, normalize_document, parse_outdated
from auditbot.audit.schemas import AuditReport, RemediationAction, RootVulnerability
from auditbot.audit.severity import filter_by_level, is_excluded, partition_by_exclusion
from auditbot.config import AuditSettings
from auditbot.graph.state import PipelineContext, RunParams
from auditbot.hashing import composite_fingerprint, hash_value
from auditbot.integrations import npm
from auditbot.integrations.git import Project
from auditbot.integrations.github import Annotation
from auditbot.observability import log_step_event, traced_step
from auditbot.status import Status, abort, success
from auditbot.store.fingerprints import AUDIT_REPORT_TYPE, DEPENDENCY_TYPE, FingerprintRecord

MANIFEST = "package.json"


def _is_action_excluded(action: RemediationAction, settings: AuditSettings) -> bool:
    if action.module in settings.excluded_packages:
        return True
    ids = [r.advisory_id for r in action.resolves]
    return bool(ids) and all(
        str(advisory_id) in settings.excluded_advisory_ids for advisory_id in ids
    )


def select_actions(actions: list[RemediationAction], settings: AuditSettings) -> list[RemediationAction]:
    """Keep actions that may be applied automatically.

    Drops excluded packages and advisories, major bumps unless forced, and
    "review" actions (no automatic fix exists).
    """
    return [
        a
        for a in actions
        if a.action != "review"
        and (settings.force or not a.is_major)
        and not _is_action_excluded(a, settings)
    ]


def vulnerable_roots(report: AuditReport, settings: AuditSettings) -> list[RootVulnerability]:
    admit = filter_by_level(settings.level)
    return [
        r
        for r in report.roots
        if admit(r)
        and not is_excluded(
            r.top_level_module,
            r.advisory_id,
            settings.excluded_packages,
            settings.excluded_advisory_ids,
        )
    ]


def _annotation_text(module: str, roots: list[RootVulnerability]) -> str:
    direct = [r for r in roots if r.vulnerable_module == r.top_level_module]
    transitive = list(
        dict.fromkeys(
            f"{r.vulnerable_module}@{r.vulnerable_version}"
            for r in roots
            if r.vulnerable_module != r.top_level_module
        )
    )
    through = (
        f"introduces {'a vulnerability' if len(transitive) == 1 else 'vulnerabilities'} "
        f"through its transitive dependencies to {join_with_and(transitive)}"
    )
    if direct and transitive:
        return f"{module} is vulnerable and {through}"
    if direct:
        return f"{module} is vulnerable"
    return f"{module} {through}"


def map_roots_to_annotations(roots: list[RootVulnerability], project: Project) -> list[Annotation]:
    """One annotation per vulnerable top-level dependency, at its manifest line."""
    path = project.path(MANIFEST)
    if not path.exists():
        return []
    manifest = path.read_text(encoding="utf-8")

    annotations = []
    by_module = sorted(roots, key=lambda r: r.top_level_module)
    for module, group in groupby(by_module, key=lambda r: r.top_level_module):
        match = re.search(re.escape(f'"{module}"'), manifest)
        if match is None:
            continue
        line = manifest.count("\n", 0, match.start()) + 1
        annotations.append(
            Annotation(
                path=MANIFEST,
                start_line=line,
                end_line=line,
                message=_annotation_text(module, list(group)),
            )
        )
    return sorted(annotations, key=lambda a: a.start_line)


def _store_fingerprints(ctx: PipelineContext, params: RunParams, raw: dict, manifest: dict) -> None:
    push = ctx.push
    fingerprint = composite_fingerprint(raw, [o.name for o in params.outdated])
    previous = ctx.fingerprints.latest(push.repo.repo_id, push.branch, AUDIT_REPORT_TYPE)
    params.fingerprint = fingerprint
    params.fingerprint_changed = previous != fingerprint

    ctx.fingerprints.add_fingerprints(
        push.repo,
        push.branch,
        push.sha,
        push.is_default_branch,
        AUDIT_REPORT_TYPE,
        [FingerprintRecord(type=AUDIT_REPORT_TYPE, name="npm-audit", sha=fingerprint)],
    )
    ctx.fingerprints.add_fingerprints(
        push.repo,
        push.branch,
        push.sha,
        push.is_default_branch,
        DEPENDENCY_TYPE,
        [
            FingerprintRecord(type=DEPENDENCY_TYPE, name=name, sha=hash_value(version), data=str(version))
            for name, version in sorted(npm.declared_ranges(manifest).items())
        ],
    )


@traced_step("audit")
def run_audit(ctx: PipelineContext, params: RunParams) -> Status:
    """Audit the checkout and report findings on the check."""
    project = params.project
    settings = ctx.config.audit
    repo = ctx.push.repo

    params.audit_args = npm.audit_args(settings.ignore_dev, settings.level)
    result = npm.audit(project.root, settings.ignore_dev, settings.level)
    raw = load_report_json(result.stdout) or {}
    try:
        report = normalize_document(raw)
    except ValidationError as e:
        log_step_event("audit", "Unexpected npm audit report", "warning", error=e)
        report = AuditReport()

    manifest = npm.read_manifest(project.root)
    dev_dependencies = set(manifest.get("devDependencies") or {})
    params.outdated = parse_outdated(npm.outdated(project.root).stdout, dev_dependencies)
    _store_fingerprints(ctx, params, raw, manifest)

    params.vulnerabilities_before = report.vulnerabilities
    params.advisories_before = report.advisories
    args = " ".join(params.audit_args)

    if not report.advisories and not result.ok and report.vulnerabilities.total > 0:
        summary = format_vulnerabilities(report.vulnerabilities).msg
        log_step_event("audit", "Counts without advisories", "warning", exit_code=result.returncode)
        if params.check:
            params.check.update(
                "neutral",
                f"`npm audit` reported {summary} vulnerabilities but no advisories "
                f"that can be acted on.\n\n`$ npm audit {args}`",
            )
        return abort(f"`npm audit` reported {summary} vulnerabilities without advisories on {repo.slug}")

    if not report.advisories:
        if params.check:
            params.check.update(
                "success",
                f"`npm audit` found no security vulnerabilities.\n\n`$ npm audit {args}`",
            )
        return success(f"`npm audit` found no security vulnerabilities on {repo.slug}").hidden()

    params.actions = select_actions(report.actions, settings)
    params.vulnerable_modules = vulnerable_roots(report, settings)

    admit = filter_by_level(settings.level)
    included, excluded = partition_by_exclusion(
        [a for a in report.advisories if admit(a)],
        settings.excluded_packages,
        settings.excluded_advisory_ids,
    )
    log_step_event(
        "audit",
        "Found advisories",
        "warning",
        included=len(included),
        excluded=len(excluded),
        actions=len(params.actions),
    )
    if params.check:
        params.check.update(
            "action_required" if included else "neutral",
            format_check_body(report.vulnerabilities, params.audit_args, included, excluded),
            map_roots_to_annotations(params.vulnerable_modules, project),
        )
    return success(f"`npm audit` found security vulnerabilities on {repo.slug}")
