"""Pull request lifecycle steps for the security and update tracks."""

from auditbot.audit.formatting import format_pr_body, format_update_body
from auditbot.graph.state import PipelineContext, RunParams
from auditbot.integrations import git, github
from auditbot.integrations.github import PullRequestSpec
from auditbot.naming import commit_message, security_branch, update_branch
from auditbot.observability import log_step_event, traced_step
from auditbot.status import Status, success

SECURITY_TITLE = "npm audit fixes"
UPDATE_TITLE = "npm dependency updates"


def _close(ctx: PipelineContext, head: str, comment: str) -> Status:
    push = ctx.push
    closed = github.close_pull_requests(push.repo, base=push.branch, head=head, comment=comment)
    if closed:
        log_step_event("close_pr", "Closed stale pull requests", "success", head=head, count=closed)
        return success(f"Closed {closed} stale pull request(s) from {head}")
    return success().hidden()


@traced_step("close_pr")
def run_close_pr(ctx: PipelineContext, params: RunParams) -> Status:
    return _close(
        ctx,
        security_branch(ctx.push.branch),
        "Closing pull request because security vulnerabilities were fixed in base branch",
    )


@traced_step("push_pr")
def run_push_pr(ctx: PipelineContext, params: RunParams) -> Status:
    """Commit applied fixes and raise (or refresh) the remediation pull request."""
    push = ctx.push
    fixed_ids = {r.advisory_id for a in params.actions for r in a.resolves}
    fixed = [a for a in params.advisories_before if a.id in fixed_ids]
    sha = push.sha or git.status(params.project).sha

    pull_request = PullRequestSpec(
        branch=security_branch(push.branch),
        title=SECURITY_TITLE,
        body=format_pr_body(
            params.vulnerabilities_before,
            params.vulnerabilities_after,
            sha,
            sorted(params.actions, key=lambda a: a.module),
            fixed,
            params.advisories_after,
        ),
        labels=ctx.config.push.labels,
    )
    return github.persist_changes(
        params.project,
        ctx.config.push.strategy,
        push,
        pull_request,
        commit_message(f"fix(deps): {SECURITY_TITLE}", ctx.config.name),
    )


@traced_step("close_update_pr")
def run_close_update_pr(ctx: PipelineContext, params: RunParams) -> Status:
    return _close(
        ctx,
        update_branch(ctx.push.branch),
        "Closing pull request because dependencies were updated in base branch",
    )


@traced_step("push_update_pr")
def run_push_update_pr(ctx: PipelineContext, params: RunParams) -> Status:
    """Commit outdated-dependency bumps on their own branch and pull request."""
    push = ctx.push
    pull_request = PullRequestSpec(
        branch=update_branch(push.branch),
        title=UPDATE_TITLE,
        body=format_update_body(params.updates),
        labels=ctx.config.push.labels,
    )
    return github.persist_changes(
        params.project,
        ctx.config.push.update_strategy,
        push,
        pull_request,
        commit_message(f"chore(deps): {UPDATE_TITLE}", ctx.config.name),
    )
