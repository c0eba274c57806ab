"""Tests for the step pipeline engine."""

import asyncio
from unittest.mock import MagicMock

import pytest

from auditbot.graph.state import RunParams, StepRecord
from auditbot.graph.workflow import (
    Step,
    arun_steps,
    build_step_graph,
    create_audit_steps,
    final_status,
    run_steps,
)
from auditbot.status import abort, failure, success


def _recording(name: str, calls: list, status):
    def run(ctx, params):
        calls.append(name)
        return status

    return run


class TestRunSteps:
    def test_runs_in_order_and_reports_last_visible_success(self):
        calls = []
        steps = [
            Step("first", _recording("first", calls, success("first done"))),
            Step("second", _recording("second", calls, success("second done"))),
            Step("third", _recording("third", calls, success().hidden())),
        ]

        status, _ = run_steps(steps, MagicMock())

        assert calls == ["first", "second", "third"]
        assert status == success("second done")

    def test_failure_halts_and_wins(self):
        calls = []
        steps = [
            Step("first", _recording("first", calls, success("ok"))),
            Step("second", _recording("second", calls, failure("broken"))),
            Step("third", _recording("third", calls, success("never"))),
        ]

        status, _ = run_steps(steps, MagicMock())

        assert calls == ["first", "second"]
        assert status.outcome == "failure"
        assert status.message == "broken"

    def test_abort_halts_without_failing(self):
        calls = []
        steps = [
            Step("first", _recording("first", calls, success("audited"))),
            Step("second", _recording("second", calls, abort("stop").hidden())),
            Step("third", _recording("third", calls, success("never"))),
        ]

        status, _ = run_steps(steps, MagicMock())

        assert calls == ["first", "second"]
        assert status == success("audited")

    def test_abort_alone_is_reported(self):
        status, _ = run_steps([Step("only", lambda ctx, params: abort("nothing").hidden())], MagicMock())
        assert status.outcome == "abort"
        assert status.visible is False

    def test_skipped_step_is_not_recorded(self):
        calls = []
        steps = [
            Step("first", _recording("first", calls, success("ok"))),
            Step("skipped", _recording("skipped", calls, failure("never")), lambda ctx, params: False),
            Step("third", _recording("third", calls, success().hidden())),
        ]

        status, _ = run_steps(steps, MagicMock())

        assert calls == ["first", "third"]
        assert status == success("ok")

    def test_exception_becomes_failure(self):
        def explode(ctx, params):
            raise RuntimeError("boom")

        calls = []
        steps = [
            Step("explode", explode),
            Step("after", _recording("after", calls, success("never"))),
        ]

        status, _ = run_steps(steps, MagicMock())

        assert calls == []
        assert status.outcome == "failure"
        assert status.message == "Step `explode` failed: boom"

    def test_params_are_shared_between_steps(self):
        def produce(ctx, params):
            params.fingerprint = "abc"
            return success().hidden()

        seen = []

        def consume(ctx, params):
            seen.append(params.fingerprint)
            return success().hidden()

        _, params = run_steps([Step("produce", produce), Step("consume", consume)], MagicMock())

        assert seen == ["abc"]
        assert params.fingerprint == "abc"

    def test_guard_sees_params_written_by_earlier_steps(self):
        def produce(ctx, params):
            params.actions = ["something"]
            return success().hidden()

        calls = []
        steps = [
            Step("produce", produce),
            Step("gated", _recording("gated", calls, success("ran")), lambda ctx, params: bool(params.actions)),
        ]

        status, _ = run_steps(steps, MagicMock())

        assert calls == ["gated"]
        assert status == success("ran")

    def test_empty_steps(self):
        status, params = run_steps([], MagicMock())
        assert status.outcome == "success"
        assert status.visible is False
        assert isinstance(params, RunParams)

    def test_async_variant(self):
        calls = []
        steps = [
            Step("first", _recording("first", calls, success("ok"))),
            Step("second", _recording("second", calls, failure("broken"))),
        ]

        status, _ = asyncio.run(arun_steps(steps, MagicMock()))

        assert calls == ["first", "second"]
        assert status.message == "broken"


class TestBuildStepGraph:
    def test_duplicate_names_rejected(self):
        with pytest.raises(ValueError):
            build_step_graph([Step("a", lambda c, p: success()), Step("a", lambda c, p: success())])

    def test_empty_rejected(self):
        with pytest.raises(ValueError):
            build_step_graph([])


class TestFinalStatus:
    def test_nothing_ran(self):
        status = final_status([])
        assert status.outcome == "success"
        assert status.visible is False

    def test_falls_back_to_last_hidden_result(self):
        records = [StepRecord("a", success().hidden()), StepRecord("b", success("b").hidden())]
        assert final_status(records).message == "b"


class TestAuditSteps:
    def test_step_order(self):
        assert [s.name for s in create_audit_steps()] == [
            "setup",
            "audit",
            "install",
            "fix",
            "close_pr",
            "push_pr",
            "update_outdated",
            "close_update_pr",
            "push_update_pr",
        ]

    def test_setup_and_audit_are_unconditional(self):
        steps = {s.name: s for s in create_audit_steps()}
        assert steps["setup"].run_when is None
        assert steps["audit"].run_when is None
