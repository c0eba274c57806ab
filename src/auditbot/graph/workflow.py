"""LangGraph step pipeline definition."""

import logging
from dataclasses import dataclass
from typing import Callable, Optional, Sequence

from langgraph.graph import END, StateGraph

from auditbot.graph.routing import (
    Guard,
    all_of,
    fingerprint_changed,
    fix_applied,
    has_actions,
    has_outdated,
    has_updates,
    no_actions,
    no_outdated,
    not_bot_branch,
    push_configured,
    route_after_step,
    update_push_configured,
    working_tree_clean,
    working_tree_dirty,
)
from auditbot.graph.state import PipelineContext, PipelineState, RunParams, StepRecord
from auditbot.nodes.audit import run_audit
from auditbot.nodes.fix import run_fix
from auditbot.nodes.install import run_install
from auditbot.nodes.pull_requests import (
    run_close_pr,
    run_close_update_pr,
    run_push_pr,
    run_push_update_pr,
)
from auditbot.nodes.setup import run_setup
from auditbot.nodes.update import run_update_outdated
from auditbot.observability import _log
from auditbot.status import Status, failure, success

logger = logging.getLogger(__name__)

StepRun = Callable[[PipelineContext, RunParams], Status]


@dataclass(frozen=True)
class Step:
    """A named pipeline step with an optional guard."""

    name: str
    run: StepRun
    run_when: Optional[Guard] = None


def _step_node(step: Step) -> Callable[[PipelineState], dict]:
    def node(state: PipelineState) -> dict:
        ctx = state["context"]
        params = state["params"]

        if step.run_when is not None and not step.run_when(ctx, params):
            _log("Skipped", "skip", step.name)
            return {}

        try:
            status = step.run(ctx, params)
        except Exception as e:
            logger.exception("Step '%s' raised", step.name)
            status = failure(f"Step `{step.name}` failed: {e}")

        return {"params": params, "results": [StepRecord(step.name, status)]}

    return node


def build_step_graph(steps: Sequence[Step]) -> StateGraph:
    """Build a linear graph: one node per step, halting on failure or abort."""
    names = [step.name for step in steps]
    if len(set(names)) != len(names):
        raise ValueError(f"Step names must be unique: {names}")
    if not steps:
        raise ValueError("At least one step is required")

    workflow = StateGraph(PipelineState)
    for step in steps:
        workflow.add_node(step.name, _step_node(step))

    workflow.set_entry_point(steps[0].name)
    for current, following in zip(steps, list(steps[1:]) + [None]):
        workflow.add_conditional_edges(
            current.name,
            route_after_step,
            {
                "continue": following.name if following else END,
                "halt": END,
            },
        )

    return workflow


def final_status(results: Sequence[StepRecord]) -> Status:
    """Aggregate step results into the pipeline's final status.

    A failure wins. Otherwise the last visible success is reported, falling
    back to the last (hidden) result, or a hidden success when nothing ran.
    """
    for record in results:
        if record.status.outcome == "failure":
            return record.status

    visible = [
        r.status for r in results if r.status.visible and r.status.outcome == "success"
    ]
    if visible:
        return visible[-1]
    if results:
        return results[-1].status
    return success().hidden()


def _initial_state(ctx: PipelineContext, params: Optional[RunParams]) -> PipelineState:
    return {"context": ctx, "params": params or RunParams(), "results": []}


def _run_config(steps: Sequence[Step]) -> dict:
    return {"recursion_limit": max(25, 2 * len(steps))}


def run_steps(
    steps: Sequence[Step],
    ctx: PipelineContext,
    params: Optional[RunParams] = None,
) -> tuple[Status, RunParams]:
    """Run steps in order and return the final status and shared params."""
    if not steps:
        return success().hidden(), params or RunParams()

    graph = build_step_graph(steps).compile()
    result = graph.invoke(_initial_state(ctx, params), config=_run_config(steps))
    return final_status(result.get("results", [])), result["params"]


async def arun_steps(
    steps: Sequence[Step],
    ctx: PipelineContext,
    params: Optional[RunParams] = None,
) -> tuple[Status, RunParams]:
    """Async variant of :func:`run_steps`."""
    if not steps:
        return success().hidden(), params or RunParams()

    graph = build_step_graph(steps).compile()
    result = await graph.ainvoke(_initial_state(ctx, params), config=_run_config(steps))
    return final_status(result.get("results", [])), result["params"]


def create_audit_steps() -> list[Step]:
    """Steps of the push-triggered remediation pipeline, in execution order.

    Security fixes take precedence: the update track only runs when no
    security action was computed this cycle.
    """
    remediation = all_of(push_configured, not_bot_branch, has_actions, fingerprint_changed)
    return [
        Step("setup", run_setup),
        Step("audit", run_audit),
        Step("install", run_install, remediation),
        Step("fix", run_fix, remediation),
        Step("close_pr", run_close_pr, all_of(working_tree_clean, not_bot_branch, no_actions)),
        Step(
            "push_pr",
            run_push_pr,
            all_of(
                push_configured,
                working_tree_dirty,
                not_bot_branch,
                has_actions,
                fix_applied,
            ),
        ),
        Step(
            "update_outdated",
            run_update_outdated,
            all_of(
                update_push_configured,
                not_bot_branch,
                no_actions,
                has_outdated,
                fingerprint_changed,
            ),
        ),
        Step(
            "close_update_pr",
            run_close_update_pr,
            all_of(update_push_configured, not_bot_branch, working_tree_clean, no_outdated),
        ),
        Step(
            "push_update_pr",
            run_push_update_pr,
            all_of(update_push_configured, working_tree_dirty, not_bot_branch, has_updates),
        ),
    ]


def create_audit_workflow():
    """Compile the remediation pipeline graph."""
    return build_step_graph(create_audit_steps()).compile()
