"""Tests for the fleet audit orchestrator and the scheduled trigger."""

import asyncio
import itertools
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from github import GithubException

from auditbot.config import RepoFilter
from auditbot.hashing import composite_fingerprint
from auditbot.models import RepositoryHandle
from auditbot.orchestrator import audit_fleet, select_batch
from auditbot.status import success
from auditbot.store.fingerprints import AUDIT_REPORT_TYPE, FingerprintRecord, FingerprintStore
from auditbot.store.state import AuditState, StateStore
from auditbot.triggers.schedule import HOUR_MS, audit_on_schedule

from conftest import CLEAN_REPORT


def _repos(count: int) -> list[RepositoryHandle]:
    return [
        RepositoryHandle(owner="acme", name=f"repo-{i:03d}", repo_id=f"{i:03d}", owner_id="1")
        for i in range(1, count + 1)
    ]


@pytest.fixture
def state_store(config):
    return StateStore(config.storage.home)


@pytest.fixture
def fleet_mocks():
    with patch("auditbot.integrations.github.list_repositories") as list_repositories, patch(
        "auditbot.integrations.github.get_json_file", return_value={}
    ) as get_json_file, patch(
        "auditbot.orchestrator.fetch_audit_report", new=AsyncMock(return_value=CLEAN_REPORT)
    ) as fetch, patch(
        "auditbot.orchestrator.outdated_names", new=AsyncMock(return_value=[])
    ):
        yield MagicMock(list_repositories=list_repositories, get_json_file=get_json_file, fetch=fetch)


def _run_fleet(config, state_store, remediate, clock, **kwargs):
    return asyncio.run(
        audit_fleet(
            config,
            remediate=remediate,
            state_store=state_store,
            client=MagicMock(),
            clock=clock,
            **kwargs,
        )
    )


class TestSelectBatch:
    def test_orders_by_last_processed_then_id(self, config):
        repos = _repos(3)
        state = AuditState()
        state.mark("001", 300)
        state.mark("002", 100)

        batch = select_batch(repos, state, config.fleet)

        assert [r.repo_id for r in batch] == ["003", "002", "001"]

    def test_skips_excluded_and_filtered(self, config):
        repos = _repos(3)
        state = AuditState()
        state.mark("002", 1, excluded=True)
        config.fleet.repos = RepoFilter(exclude=["repo-003$"])

        assert [r.repo_id for r in select_batch(repos, state, config.fleet)] == ["001"]

    def test_caller_filter(self, config):
        batch = select_batch(_repos(3), AuditState(), config.fleet, lambda r: r.repo_id == "002")
        assert [r.repo_id for r in batch] == ["002"]


class TestAuditFleet:
    def test_processes_cap_with_least_recently_processed_first(self, config, state_store, fleet_mocks):
        config.fleet.max_repositories = 25
        config.fleet.concurrency = 1
        repos = _repos(30)
        fleet_mocks.list_repositories.return_value = list(reversed(repos))
        state = AuditState()
        for i, repo in enumerate(repos, start=1):
            state.mark(repo.repo_id, i)
        state_store.save(config.name, state)
        remediate = AsyncMock(return_value=success("fixed"))
        ticks = itertools.count(10_000)

        status = _run_fleet(config, state_store, remediate, lambda: next(ticks))

        assert status.message == "Audited 25 repositories"
        assert remediate.await_count == 25
        assert [c.args[0].repo_id for c in remediate.await_args_list] == [r.repo_id for r in repos[:25]]
        after = state_store.load(config.name)
        for i, repo in enumerate(repos, start=1):
            if i <= 25:
                assert after.get(repo.repo_id).processed >= 10_000
            else:
                assert after.get(repo.repo_id).processed == i

    def test_manifest_failure_excludes_repository(self, config, state_store, fleet_mocks):
        repos = _repos(3)
        fleet_mocks.list_repositories.return_value = repos

        def get_json_file(repo, path, ref=None):
            if repo.repo_id == "002":
                raise GithubException(404, {"message": "Not Found"}, None)
            return {}

        fleet_mocks.get_json_file.side_effect = get_json_file
        remediate = AsyncMock(return_value=success("fixed"))
        ticks = itertools.count(1)

        _run_fleet(config, state_store, remediate, lambda: next(ticks))

        state = state_store.load(config.name)
        assert state.is_excluded("002")
        assert not state.is_excluded("001")
        assert sorted(c.args[0].repo_id for c in remediate.await_args_list) == ["001", "003"]

        fleet_mocks.get_json_file.reset_mock()
        _run_fleet(config, state_store, AsyncMock(return_value=success()), lambda: next(ticks))

        seen = {c.args[0].repo_id for c in fleet_mocks.get_json_file.call_args_list}
        assert seen == {"001", "003"}

    def test_unchanged_fingerprint_is_not_remediated(self, config, state_store, fleet_mocks):
        repo = _repos(1)[0]
        fleet_mocks.list_repositories.return_value = [repo]
        fingerprints = FingerprintStore(config.storage.home)
        fingerprints.add_fingerprints(
            repo,
            repo.default_branch,
            "abc",
            True,
            AUDIT_REPORT_TYPE,
            [
                FingerprintRecord(
                    type=AUDIT_REPORT_TYPE, name="npm-audit", sha=composite_fingerprint(CLEAN_REPORT, [])
                )
            ],
        )
        remediate = AsyncMock(return_value=success())

        status = _run_fleet(config, state_store, remediate, lambda: 5, fingerprints=fingerprints)

        remediate.assert_not_awaited()
        assert status.message == "Audited 1 repository"
        assert state_store.load(config.name).get(repo.repo_id).processed == 5

    def test_remediation_error_does_not_abort_batch(self, config, state_store, fleet_mocks):
        fleet_mocks.list_repositories.return_value = _repos(2)
        remediate = AsyncMock(side_effect=[RuntimeError("boom"), success()])

        _run_fleet(config, state_store, remediate, lambda: 7)

        state = state_store.load(config.name)
        assert remediate.await_count == 2
        assert state.get("001").processed == 7
        assert not state.is_excluded("001")
        assert state.get("002").processed == 7

    def test_concurrency_is_bounded(self, config, state_store, fleet_mocks):
        config.fleet.concurrency = 2
        fleet_mocks.list_repositories.return_value = _repos(6)
        active = 0
        peak = 0

        async def remediate(repo):
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.01)
            active -= 1
            return success()

        _run_fleet(config, state_store, remediate, lambda: 1)

        assert 1 <= peak <= 2

    def test_not_configured_to_push(self, config, state_store, fleet_mocks):
        config.push.strategy = "none"

        status = _run_fleet(config, state_store, AsyncMock(), lambda: 1)

        assert status.visible is False
        assert status.message == "Not configured to push changes"
        fleet_mocks.list_repositories.assert_not_called()

    def test_empty_batch(self, config, state_store, fleet_mocks):
        fleet_mocks.list_repositories.return_value = []
        status = _run_fleet(config, state_store, AsyncMock(), lambda: 1)
        assert status.message == "No repositories to audit"


class TestAuditOnSchedule:
    def test_skips_within_idle_window(self, config, state_store, fleet_mocks):
        state = AuditState()
        state.mark("001", 10 * HOUR_MS)
        state_store.save(config.name, state)

        status = asyncio.run(
            audit_on_schedule(config, clock=lambda: 11 * HOUR_MS, state_store=state_store)
        )

        assert status.message == "Not passed the required idle time"
        fleet_mocks.list_repositories.assert_not_called()

    def test_runs_after_idle_window(self, config, state_store, fleet_mocks):
        state = AuditState()
        state.mark("001", HOUR_MS)
        state_store.save(config.name, state)
        fleet_mocks.list_repositories.return_value = _repos(1)
        remediate = AsyncMock(return_value=success())

        status = asyncio.run(
            audit_on_schedule(
                config,
                clock=lambda: 30 * HOUR_MS,
                state_store=state_store,
                remediate=remediate,
                client=MagicMock(),
            )
        )

        assert status.message == "Audited 1 repository"
        remediate.assert_awaited_once()
