"""Setup step: acquire a checkout and create the check scaffold."""

from auditbot.graph.state import PipelineContext, RunParams
from auditbot.integrations import git, github
from auditbot.naming import is_bot_branch
from auditbot.observability import log_step_event, traced_step
from auditbot.status import Status, abort, success

CHECK_TITLE = "npm audit"


@traced_step("setup")
def run_setup(ctx: PipelineContext, params: RunParams) -> Status:
    """Clone (or load in place) the pushed branch and open an audit check."""
    push = ctx.push

    # Never remediate our own remediation branches
    if is_bot_branch(push.branch):
        return abort(f"Ignoring push to remediation branch {push.branch}").hidden()

    params.credential = github.get_token()
    if ctx.in_place:
        project = git.load(push.repo, push.branch, ctx.workdir)
    else:
        project = git.clone(
            push.repo, push.branch, ctx.workdir / push.repo.name, params.credential
        )

    if not project.path("package-lock.json").exists():
        log_step_event("setup", "No package-lock.json", "skip", repo=push.repo.slug)
        return abort(f"Ignoring push to non-npm project {push.repo.slug}").hidden()

    params.project = project
    sha = push.sha or git.status(project).sha
    params.check = github.create_check(
        push.repo,
        sha,
        name=ctx.config.name,
        title=CHECK_TITLE,
        body="Running `npm audit`",
    )
    return success().hidden()
