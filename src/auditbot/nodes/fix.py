"""Fix step: apply remediation actions, then re-audit."""

from pathlib import Path

from auditbot.audit.report import parse_audit_report
from auditbot.audit.schemas import RemediationAction
from auditbot.audit.severity import filter_by_level, partition_by_exclusion
from auditbot.graph.state import PipelineContext, RunParams
from auditbot.integrations import npm
from auditbot.integrations.npm import NpmResult
from auditbot.observability import log_step_event, traced_step
from auditbot.status import Status, failure, success


def apply_action(root: Path, action: RemediationAction) -> NpmResult:
    """Run the npm command that realizes one remediation action.

    ``install`` pins the target version, as a dev dependency when none of the
    advisories it resolves affects a runtime dependency. ``update`` bumps the
    module in place up to the action's depth.
    """
    if action.action == "install":
        dev = not any(not r.dev for r in action.resolves)
        return npm.install_package(root, f"{action.module}@{action.target}", dev=dev)
    return npm.update_package(root, action.module, action.depth)


@traced_step("fix")
def run_fix(ctx: PipelineContext, params: RunParams) -> Status:
    root = params.project.root
    settings = ctx.config.audit

    for action in params.actions:
        log_step_event("fix", f"Applying {action.action}", module=action.module, target=action.target)
        result = apply_action(root, action)
        if not result.ok:
            return failure(f"`npm audit fix` failed on {action.module}")

    output = npm.audit(root, settings.ignore_dev, settings.level).stdout
    report = parse_audit_report(output)
    admit = filter_by_level(settings.level)
    included, _ = partition_by_exclusion(
        [a for a in report.advisories if admit(a)],
        settings.excluded_packages,
        settings.excluded_advisory_ids,
    )
    params.advisories_after = included
    params.vulnerabilities_after = report.vulnerabilities
    params.fixed = True

    return success(f"`npm audit` fixed security vulnerabilities on {ctx.push.repo.slug}")
