"""Registry webhook: raise bump PRs when a dependency publishes a new version."""

import hashlib
import hmac
import logging
import tempfile
from pathlib import Path
from typing import Optional

from auditbot.audit.formatting import code_line, italic
from auditbot.config import AuditbotConfig
from auditbot.hashing import hash_value
from auditbot.integrations import git, github, npm
from auditbot.integrations.github import PullRequestSpec
from auditbot.models import Push
from auditbot.naming import commit_message, publish_branch
from auditbot.status import Status, failure, success
from auditbot.store.fingerprints import DEPENDENCY_TYPE, FingerprintStore, HeadFingerprints

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "x-npm-signature"
PUBLISH_EVENT = "package:publish"


def verify_signature(body: bytes, header_signature: Optional[str], secret: str) -> bool:
    """Check a ``sha256=<hex>`` HMAC-SHA256 signature over the raw request body."""
    if not header_signature:
        return False
    expected = hmac.new(
        key=secret.encode("utf-8"),
        msg=body,
        digestmod=hashlib.sha256,
    ).hexdigest()
    return hmac.compare_digest(f"sha256={expected}", header_signature)


def outdated_heads(fingerprints: FingerprintStore, name: str, version: str) -> list[HeadFingerprints]:
    """Default-branch heads declaring ``name`` at neither ``version`` nor ``^version``."""
    current = {hash_value(version), hash_value(f"^{version}")}
    return [
        head
        for head in fingerprints.head_fingerprints(DEPENDENCY_TYPE, name)
        if any(record.sha not in current for record in head.records)
    ]


def update_repository(head: HeadFingerprints, config: AuditbotConfig, name: str, version: str) -> Status:
    """Bump ``name`` to ``^version`` on the head's branch and raise a pull request."""
    repo = head.repo
    with tempfile.TemporaryDirectory(prefix="auditbot-publish-") as tmp:
        project = git.clone(repo, head.branch, Path(tmp) / repo.name, github.get_token())
        manifest = npm.read_manifest(project.root)
        is_dev = name in (manifest.get("devDependencies") or {})

        result = npm.install_package(project.root, f"{name}@^{version}", dev=is_dev)
        if not result.ok:
            return failure(f"`npm install` failed on {repo.slug}")

        title = f"Update {name} > {version}"
        body = (
            "This pull request updates the following dependency because a new "
            "version was published to the registry\n\n"
            f"### {'Development ' if is_dev else ''}Dependency\n\n"
            f"* {code_line(name)} > {italic(version)}"
        )
        return github.persist_changes(
            project,
            "pr",
            Push(repo=repo, branch=head.branch, sha=head.commit),
            PullRequestSpec(
                branch=publish_branch(head.branch, name),
                title=title,
                body=body,
                labels=config.push.labels,
            ),
            commit_message(title, config.name),
        )


def handle_package_publish(
    config: AuditbotConfig,
    body: bytes,
    payload: dict,
    signature: Optional[str] = None,
    fingerprints: Optional[FingerprintStore] = None,
) -> Status:
    """Handle a registry hook delivery.

    The signature is only enforced when a webhook secret is configured.
    """
    if config.webhook.secret and not verify_signature(body, signature, config.webhook.secret):
        return failure("Incoming payload is not valid")

    latest = ((payload.get("payload") or {}).get("dist-tags") or {}).get("latest")
    if payload.get("event") != PUBLISH_EVENT or not latest:
        return success().hidden()

    name = payload.get("name")
    if not name:
        return success().hidden()

    fingerprints = fingerprints or FingerprintStore(config.storage.home)
    heads = [h for h in outdated_heads(fingerprints, name, latest) if config.fleet.repos.matches(h.repo.slug)]
    for head in heads:
        try:
            status = update_repository(head, config, name, latest)
        except git.GitError as e:
            logger.error("Updating %s on %s failed: %s", name, head.repo.slug, e)
            continue
        logger.info("Update %s on %s: %s %s", name, head.repo.slug, status.outcome, status.message or "")

    if not heads:
        return success().hidden()
    return success(f"Checked {len(heads)} repositories for {name}@{latest}")
