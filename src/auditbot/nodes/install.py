"""Install step: restore node_modules before applying fixes."""

from auditbot.graph.state import PipelineContext, RunParams
from auditbot.integrations import npm
from auditbot.observability import log_step_event, traced_step
from auditbot.status import Status, failure, success


@traced_step("install")
def run_install(ctx: PipelineContext, params: RunParams) -> Status:
    result = npm.install(params.project.root)
    if not result.ok:
        log_step_event("install", "npm install failed", "error", stderr=result.stderr[-500:])
        return failure("`npm install` failed")
    params.installed = True
    return success().hidden()
