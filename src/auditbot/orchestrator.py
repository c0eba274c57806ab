"""Fleet audit: select repositories, audit them with bounded concurrency.

Each repository is audited through the registry's audit endpoint from its
``package.json`` and ``package-lock.json`` (read through the GitHub API, no
clone). Only repositories whose audit fingerprint changed are handed to the
full remediation pipeline. Progress is persisted after every repository.
"""

import asyncio
import json
import logging
import tempfile
import time
from pathlib import Path
from typing import Awaitable, Callable, Optional

import httpx
from github import GithubException

from auditbot.audit.report import parse_outdated
from auditbot.config import AuditbotConfig, FleetSettings
from auditbot.hashing import composite_fingerprint
from auditbot.integrations import github, npm
from auditbot.integrations.registry import DEFAULT_TIMEOUT, build_audit_request, fetch_audit_report
from auditbot.models import RepositoryHandle
from auditbot.status import Status, success
from auditbot.store.fingerprints import AUDIT_REPORT_TYPE, FingerprintStore
from auditbot.store.state import AuditState, StateStore
from auditbot.triggers.push import arun_on_push

logger = logging.getLogger(__name__)

Remediate = Callable[[RepositoryHandle], Awaitable[Status]]
RepositoryPredicate = Callable[[RepositoryHandle], bool]


def now_ms() -> int:
    return int(time.time() * 1000)


def select_batch(
    repositories: list[RepositoryHandle],
    state: AuditState,
    fleet: FleetSettings,
    repo_filter: Optional[RepositoryPredicate] = None,
) -> list[RepositoryHandle]:
    """Filter, order by (last processed, repo id) and cap the repositories to audit."""
    candidates = [
        r
        for r in repositories
        if (repo_filter is None or repo_filter(r))
        and fleet.repos.matches(r.slug)
        and not state.is_excluded(r.repo_id)
    ]
    candidates.sort(key=lambda r: (state.get(r.repo_id).processed, r.repo_id))
    return candidates[: fleet.max_repositories]


async def outdated_names(package_json: dict, package_lock: dict) -> list[str]:
    """Run ``npm outdated`` against the manifest pair in a scratch directory."""
    with tempfile.TemporaryDirectory(prefix="auditbot-outdated-") as tmp:
        root = Path(tmp)
        (root / "package.json").write_text(json.dumps(package_json), encoding="utf-8")
        (root / "package-lock.json").write_text(json.dumps(package_lock), encoding="utf-8")
        output = await npm.outdated_async(root)
    return [o.name for o in parse_outdated(output)]


def default_remediate(config: AuditbotConfig, fingerprints: FingerprintStore) -> Remediate:
    """Run the push pipeline against the head of the repository's default branch."""

    async def remediate(repo: RepositoryHandle) -> Status:
        push = await asyncio.to_thread(github.get_head_push, repo)
        return await arun_on_push(push, config, fingerprints=fingerprints)

    return remediate


async def audit_repository(
    repo: RepositoryHandle,
    config: AuditbotConfig,
    fingerprints: FingerprintStore,
    client: httpx.AsyncClient,
    remediate: Remediate,
) -> bool:
    """Audit one repository; returns True when it should be excluded from now on."""
    try:
        package_json, package_lock = await asyncio.gather(
            asyncio.to_thread(github.get_json_file, repo, "package.json"),
            asyncio.to_thread(github.get_json_file, repo, "package-lock.json"),
        )
    except (GithubException, ValueError, OSError) as e:
        logger.info("Failed to retrieve package.json and package-lock.json from %s: %s", repo.slug, e)
        return True

    request = build_audit_request(package_json, package_lock, config.audit.ignore_dev)
    report = await fetch_audit_report(client, request)
    outdated = await outdated_names(package_json, package_lock)

    fingerprint = composite_fingerprint(report, outdated)
    previous = fingerprints.latest(repo.repo_id, repo.default_branch, AUDIT_REPORT_TYPE)
    if fingerprint == previous:
        logger.info("npm audit report for %s not different to existing", repo.slug)
        return False

    logger.info("npm audit report for %s different to existing", repo.slug)
    status = await remediate(repo)
    logger.info("Remediation of %s finished: %s %s", repo.slug, status.outcome, status.message or "")
    return False


async def audit_fleet(
    config: AuditbotConfig,
    repo_filter: Optional[RepositoryPredicate] = None,
    remediate: Optional[Remediate] = None,
    state_store: Optional[StateStore] = None,
    fingerprints: Optional[FingerprintStore] = None,
    client: Optional[httpx.AsyncClient] = None,
    clock: Callable[[], int] = now_ms,
) -> Status:
    """Audit the repositories in scope, at most ``fleet.concurrency`` at a time.

    One repository's failure never aborts the batch: it is logged and the
    repository's state is still stamped so the next cycle moves on.
    """
    if config.push.strategy == "none":
        return success("Not configured to push changes").hidden()

    state_store = state_store or StateStore(config.storage.home)
    fingerprints = fingerprints or FingerprintStore(config.storage.home)
    remediate = remediate or default_remediate(config, fingerprints)

    state = state_store.load(config.name)
    repositories = await asyncio.to_thread(github.list_repositories, config.fleet.owners)
    batch = select_batch(repositories, state, config.fleet, repo_filter)
    if not batch:
        return success("No repositories to audit").hidden()
    logger.info("Auditing %d repositories after applying filters", len(batch))

    semaphore = asyncio.Semaphore(config.fleet.concurrency)

    async def process(repo: RepositoryHandle, http: httpx.AsyncClient) -> None:
        async with semaphore:
            excluded = None
            try:
                excluded = await audit_repository(repo, config, fingerprints, http, remediate)
            except Exception:
                logger.exception("Auditing %s failed", repo.slug)
            finally:
                state.mark(repo.repo_id, clock(), excluded)
                state_store.save(config.name, state)

    if client is not None:
        await asyncio.gather(*(process(r, client) for r in batch))
    else:
        async with httpx.AsyncClient(timeout=DEFAULT_TIMEOUT) as http:
            await asyncio.gather(*(process(r, http) for r in batch))

    return success(f"Audited {len(batch)} {'repository' if len(batch) == 1 else 'repositories'}")
