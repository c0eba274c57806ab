"""PipelineState schema for the remediation workflow."""

import operator
from dataclasses import dataclass, field
from pathlib import Path
from typing import Annotated, NamedTuple, Optional, TypedDict

from auditbot.audit.schemas import (
    Advisory,
    OutdatedDependency,
    RemediationAction,
    RootVulnerability,
    VulnerabilityCounts,
)
from auditbot.config import AuditbotConfig
from auditbot.integrations.git import Project
from auditbot.integrations.github import Check
from auditbot.models import Push
from auditbot.status import Status
from auditbot.store.fingerprints import FingerprintStore


@dataclass(frozen=True)
class PipelineContext:
    """Immutable inputs of one pipeline run."""

    push: Push
    config: AuditbotConfig
    fingerprints: FingerprintStore
    workdir: Path  # clone target, or the existing checkout when in_place
    in_place: bool = False


@dataclass
class RunParams:
    """Mutable record threaded through the steps of one run.

    Every field has an empty default so that a step gated on an earlier,
    skipped step still sees well-formed values.
    """

    # === Setup ===
    project: Optional[Project] = None
    credential: Optional[str] = None
    check: Optional[Check] = None

    # === Audit ===
    audit_args: list[str] = field(default_factory=list)
    fingerprint: Optional[str] = None
    fingerprint_changed: bool = True
    advisories_before: list[Advisory] = field(default_factory=list)
    vulnerabilities_before: VulnerabilityCounts = field(default_factory=VulnerabilityCounts)
    vulnerable_modules: list[RootVulnerability] = field(default_factory=list)
    actions: list[RemediationAction] = field(default_factory=list)
    outdated: list[OutdatedDependency] = field(default_factory=list)

    # === Install / Fix ===
    installed: bool = False
    fixed: bool = False
    advisories_after: list[Advisory] = field(default_factory=list)
    vulnerabilities_after: VulnerabilityCounts = field(default_factory=VulnerabilityCounts)

    # === Update outdated ===
    updates: list[OutdatedDependency] = field(default_factory=list)


class StepRecord(NamedTuple):
    step: str
    status: Status


class PipelineState(TypedDict, total=False):
    """State schema for the step graph."""

    context: PipelineContext
    params: RunParams
    results: Annotated[list[StepRecord], operator.add]
