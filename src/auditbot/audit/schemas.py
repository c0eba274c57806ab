"""Pydantic schemas for npm audit output and normalized reports."""

from typing import Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

Severity = Literal["critical", "high", "moderate", "low", "info"]


class Finding(BaseModel):
    """A vulnerable version of a module and the dependency paths leading to it."""

    version: str = ""
    paths: list[str] = Field(default_factory=list)


class RawAdvisory(BaseModel):
    """Advisory entry as emitted by ``npm audit --json``."""

    model_config = ConfigDict(extra="ignore")

    id: int
    module_name: str
    severity: Severity
    title: str = ""
    url: str = ""
    vulnerable_versions: str = ""
    recommendation: Optional[str] = None
    overview: Optional[str] = None
    updated: str = ""
    cves: list[str] = Field(default_factory=list)
    findings: list[Finding] = Field(default_factory=list)


class Resolution(BaseModel):
    """An advisory resolved by a remediation action."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    advisory_id: int = Field(alias="id")
    dev: bool = False


class RemediationAction(BaseModel):
    """A fix proposed by the audit tool."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    module: str
    action: Literal["install", "update", "review"]
    target: str = ""
    is_major: bool = Field(default=False, alias="isMajor")
    depth: Optional[int] = None
    resolves: list[Resolution] = Field(default_factory=list)


class VulnerabilityCounts(BaseModel):
    """Vulnerability count per severity."""

    model_config = ConfigDict(extra="ignore")

    info: int = 0
    low: int = 0
    moderate: int = 0
    high: int = 0
    critical: int = 0

    @property
    def total(self) -> int:
        return self.info + self.low + self.moderate + self.high + self.critical


class RawMetadata(BaseModel):
    model_config = ConfigDict(extra="ignore")

    vulnerabilities: VulnerabilityCounts = Field(default_factory=VulnerabilityCounts)


class RawAuditOutput(BaseModel):
    """Top-level ``npm audit --json`` document (npm 6 report format)."""

    model_config = ConfigDict(extra="ignore")

    advisories: dict[str, RawAdvisory] = Field(default_factory=dict)
    actions: list[RemediationAction] = Field(default_factory=list)
    metadata: RawMetadata = Field(default_factory=RawMetadata)


class RawVia(BaseModel):
    """An advisory causing a vulnerability in a version 2 report."""

    model_config = ConfigDict(extra="ignore")

    source: int
    name: str
    dependency: str = ""
    title: str = ""
    url: str = ""
    severity: Severity
    range: str = ""


class RawFixAvailable(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    name: str
    version: str
    is_semver_major: bool = Field(default=False, alias="isSemVerMajor")


class RawVulnerability(BaseModel):
    """Entry of the ``vulnerabilities`` map of a version 2 report.

    ``via`` holds advisories, or names of vulnerable packages this one
    depends on. ``effects`` names the packages depending on this one.
    """

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    name: str
    severity: Severity
    is_direct: bool = Field(default=False, alias="isDirect")
    via: list[Union[RawVia, str]] = Field(default_factory=list)
    effects: list[str] = Field(default_factory=list)
    range: str = ""
    fix_available: Union[RawFixAvailable, bool] = Field(default=False, alias="fixAvailable")


class RawAuditOutputV2(BaseModel):
    """Top-level ``npm audit --json`` document of npm 7 and later."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    audit_report_version: int = Field(alias="auditReportVersion")
    vulnerabilities: dict[str, RawVulnerability] = Field(default_factory=dict)
    metadata: RawMetadata = Field(default_factory=RawMetadata)


class Advisory(BaseModel):
    """Normalized advisory with rendered markdown details."""

    id: int
    module: str
    severity: Severity
    details: str
    cves: list[str] = Field(default_factory=list)
    updated: str = ""


class RootVulnerability(BaseModel):
    """A vulnerable path attributed to the direct dependency that introduces it."""

    advisory_id: int
    severity: Severity
    top_level_module: str
    vulnerable_module: str
    vulnerable_version: str


class AuditReport(BaseModel):
    """Normalized audit report."""

    advisories: list[Advisory] = Field(default_factory=list)
    actions: list[RemediationAction] = Field(default_factory=list)
    roots: list[RootVulnerability] = Field(default_factory=list)
    vulnerabilities: VulnerabilityCounts = Field(default_factory=VulnerabilityCounts)


class OutdatedDependency(BaseModel):
    """A dependency whose wanted version differs from the installed one."""

    name: str
    current: Optional[str] = None
    wanted: Optional[str] = None
    latest: Optional[str] = None
    dev: bool = False
