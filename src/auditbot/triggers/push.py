"""Push trigger: run the remediation pipeline for one pushed branch."""

import tempfile
from pathlib import Path
from typing import Optional

from auditbot.config import AuditbotConfig
from auditbot.graph.state import PipelineContext
from auditbot.graph.workflow import arun_steps, create_audit_steps, run_steps
from auditbot.models import Push
from auditbot.status import Status
from auditbot.store.fingerprints import AUDIT_REPORT_TYPE, FingerprintStore


def build_context(
    push: Push,
    config: AuditbotConfig,
    workdir: Path,
    in_place: bool = False,
    fingerprints: Optional[FingerprintStore] = None,
) -> PipelineContext:
    return PipelineContext(
        push=push,
        config=config,
        fingerprints=fingerprints or FingerprintStore(config.storage.home),
        workdir=workdir,
        in_place=in_place,
    )


def _settle(ctx: PipelineContext, status: Status) -> Status:
    """Forget the recorded audit fingerprint of a failed run so the next run retries."""
    if status.outcome == "failure":
        push = ctx.push
        ctx.fingerprints.remove_fingerprints(push.repo.repo_id, push.branch, AUDIT_REPORT_TYPE)
    return status


def run_on_push(
    push: Push,
    config: AuditbotConfig,
    checkout: Optional[Path] = None,
    fingerprints: Optional[FingerprintStore] = None,
) -> Status:
    """Audit and remediate ``push``.

    Args:
        push: The pushed branch and head commit.
        config: Loaded configuration.
        checkout: Existing checkout to work in place; cloned into a
            temporary directory when omitted.
        fingerprints: Shared fingerprint store (defaults to the configured home).

    Returns:
        The pipeline's final status.
    """
    steps = create_audit_steps()
    if checkout is not None:
        ctx = build_context(push, config, checkout, in_place=True, fingerprints=fingerprints)
        status, _ = run_steps(steps, ctx)
        return _settle(ctx, status)

    with tempfile.TemporaryDirectory(prefix="auditbot-") as tmp:
        ctx = build_context(push, config, Path(tmp), fingerprints=fingerprints)
        status, _ = run_steps(steps, ctx)
    return _settle(ctx, status)


async def arun_on_push(
    push: Push,
    config: AuditbotConfig,
    fingerprints: Optional[FingerprintStore] = None,
) -> Status:
    """Async variant of :func:`run_on_push`, always on a fresh clone."""
    with tempfile.TemporaryDirectory(prefix="auditbot-") as tmp:
        ctx = build_context(push, config, Path(tmp), fingerprints=fingerprints)
        status, _ = await arun_steps(create_audit_steps(), ctx)
    return _settle(ctx, status)
