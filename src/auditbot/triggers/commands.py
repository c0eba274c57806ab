"""On-demand commands: fleet audit and package install."""

import logging
import re
import tempfile
from pathlib import Path
from typing import Optional

from auditbot.audit.formatting import code_line, italic, plural
from auditbot.config import AuditbotConfig
from auditbot.integrations import git, github, npm
from auditbot.integrations.github import PullRequestSpec
from auditbot.models import Push, RepositoryHandle
from auditbot.naming import commit_message, install_branch
from auditbot.orchestrator import audit_fleet
from auditbot.status import Status, failure, success
from auditbot.store.fingerprints import DEPENDENCY_TYPE, FingerprintStore

logger = logging.getLogger(__name__)


async def run_audit_command(
    config: AuditbotConfig,
    owner: Optional[str] = None,
    repo: Optional[str] = None,
    **kwargs,
) -> Status:
    """Fleet audit without the idle window, optionally narrowed to an owner/repo."""

    def repo_filter(handle: RepositoryHandle) -> bool:
        if owner and owner != handle.owner:
            return False
        if repo and repo != handle.name:
            return False
        return True

    return await audit_fleet(config, repo_filter=repo_filter, **kwargs)


def find_dependents(
    fingerprints: FingerprintStore,
    package: str,
    repo: Optional[str] = None,
    repos: Optional[str] = None,
) -> list[RepositoryHandle]:
    """Repositories whose default branch declares ``package``, by slug or slug regex."""
    matched = []
    for head in fingerprints.head_fingerprints(DEPENDENCY_TYPE, package):
        slug = head.repo.slug
        if repo is not None and slug != repo:
            continue
        if repo is None and repos is not None and not re.search(repos, slug):
            continue
        matched.append(head.repo)
    return matched


def install_package(
    handle: RepositoryHandle,
    config: AuditbotConfig,
    package: str,
    version: str,
    save: Optional[str] = None,
) -> Status:
    """Clone ``handle``, install ``package@version`` and persist the change."""
    with tempfile.TemporaryDirectory(prefix="auditbot-install-") as tmp:
        project = git.clone(
            handle, handle.default_branch, Path(tmp) / handle.name, github.get_token()
        )
        manifest = npm.read_manifest(project.root)
        is_dev = package in (manifest.get("devDependencies") or {})
        extra = [f"--save-{save}"] if save else []
        result = npm.install_package(project.root, f"{package}@{version}", dev=is_dev, extra=extra)
        if not result.ok:
            logger.error("npm install %s@%s failed on %s", package, version, handle.slug)
            return failure(f"`npm install` failed on {handle.slug}")

        title = f"Update {package} > {version}"
        return github.persist_changes(
            project,
            config.push.strategy,
            Push(repo=handle, branch=handle.default_branch),
            PullRequestSpec(
                branch=install_branch(package),
                title=title,
                body=(
                    "This pull request updates the following npm dependency\n\n"
                    f" * {code_line(package)} > {italic(version)}"
                ),
                labels=config.push.labels,
            ),
            commit_message(title, config.name),
        )


def run_install_command(
    config: AuditbotConfig,
    package: str,
    version: Optional[str] = None,
    repo: Optional[str] = None,
    repos: Optional[str] = None,
    save: Optional[str] = None,
    fingerprints: Optional[FingerprintStore] = None,
) -> Status:
    """Install ``package`` into one repository (``repo`` slug) or every match of ``repos``."""
    if not repo and not repos:
        return success("No repository provided").hidden()

    fingerprints = fingerprints or FingerprintStore(config.storage.home)
    version = version or "latest"
    targets = [
        r
        for r in find_dependents(fingerprints, package, repo, repos)
        if config.fleet.repos.matches(r.slug)
    ]
    if not targets:
        return success("No repository selected after applying repository filter").hidden()

    installed = 0
    for handle in targets:
        try:
            status = install_package(handle, config, package, version, save)
        except git.GitError as e:
            logger.error("Installing %s on %s failed: %s", package, handle.slug, e)
            continue
        logger.info("Install on %s: %s %s", handle.slug, status.outcome, status.message or "")
        if status.ok:
            installed += 1

    return success(
        f"Installed {code_line(f'{package}@{version}')} on {installed} "
        f"{plural(installed, 'repository', 'repositories')}"
    )
