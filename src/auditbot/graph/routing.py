"""Step guards and conditional routing for the step graph."""

from typing import Callable

from auditbot.graph.state import PipelineContext, PipelineState, RunParams
from auditbot.integrations import git
from auditbot.naming import is_bot_branch

Guard = Callable[[PipelineContext, RunParams], bool]


def route_after_step(state: PipelineState) -> str:
    """Halt the graph once the latest recorded step failed or aborted."""
    results = state.get("results") or []
    if results and results[-1].status.halts:
        return "halt"
    return "continue"


def all_of(*guards: Guard) -> Guard:
    """Compose guards; the step runs only when every guard holds."""

    def guard(ctx: PipelineContext, params: RunParams) -> bool:
        return all(g(ctx, params) for g in guards)

    return guard


def push_configured(ctx: PipelineContext, params: RunParams) -> bool:
    return ctx.config.push.strategy != "none"


def update_push_configured(ctx: PipelineContext, params: RunParams) -> bool:
    return ctx.config.push.update_strategy != "none"


def not_bot_branch(ctx: PipelineContext, params: RunParams) -> bool:
    return not is_bot_branch(ctx.push.branch)


def has_actions(ctx: PipelineContext, params: RunParams) -> bool:
    return bool(params.actions)


def no_actions(ctx: PipelineContext, params: RunParams) -> bool:
    return not params.actions


def fix_applied(ctx: PipelineContext, params: RunParams) -> bool:
    return params.fixed


def fingerprint_changed(ctx: PipelineContext, params: RunParams) -> bool:
    return params.fingerprint_changed


def has_outdated(ctx: PipelineContext, params: RunParams) -> bool:
    return bool(params.outdated)


def no_outdated(ctx: PipelineContext, params: RunParams) -> bool:
    return not params.outdated


def has_updates(ctx: PipelineContext, params: RunParams) -> bool:
    return bool(params.updates)


def working_tree_clean(ctx: PipelineContext, params: RunParams) -> bool:
    if params.project is None:
        return False
    return git.status(params.project).is_clean


def working_tree_dirty(ctx: PipelineContext, params: RunParams) -> bool:
    if params.project is None:
        return False
    return not git.status(params.project).is_clean
