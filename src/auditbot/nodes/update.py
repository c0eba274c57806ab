"""Update step: bump outdated dependencies to their wanted versions."""

from auditbot.audit.schemas import OutdatedDependency
from auditbot.config import AuditSettings
from auditbot.graph.state import PipelineContext, RunParams
from auditbot.integrations import npm
from auditbot.observability import log_step_event, traced_step
from auditbot.status import Status, failure, success


def select_updates(outdated: list[OutdatedDependency], settings: AuditSettings) -> list[OutdatedDependency]:
    """Drop excluded packages and, when dev dependencies are ignored, dev dependencies."""
    return [
        o
        for o in outdated
        if o.name not in settings.excluded_packages and not (settings.ignore_dev and o.dev)
    ]


@traced_step("update_outdated")
def run_update_outdated(ctx: PipelineContext, params: RunParams) -> Status:
    updates = select_updates(params.outdated, ctx.config.audit)
    if not updates:
        return success().hidden()

    root = params.project.root
    if not params.installed:
        if not npm.install(root).ok:
            return failure("`npm install` failed")
        params.installed = True

    for dependency in updates:
        log_step_event(
            "update_outdated",
            "Updating",
            module=dependency.name,
            current=dependency.current,
            wanted=dependency.wanted,
        )
        if not npm.update_package(root, dependency.name).ok:
            return failure(f"`npm update` failed on {dependency.name}")

    params.updates = updates
    return success(f"Updated {len(updates)} outdated npm dependencies on {ctx.push.repo.slug}")
