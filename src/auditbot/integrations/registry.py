"""npm registry security audit endpoint."""

import logging

import httpx
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

AUDIT_URL = "https://registry.npmjs.org/-/npm/v1/security/audits"
DEFAULT_TIMEOUT = 60.0


class AuditRequest(BaseModel):
    """Body accepted by the registry audit endpoint."""

    name: str = ""
    version: str = ""
    requires: dict[str, str] = Field(default_factory=dict)
    dependencies: dict = Field(default_factory=dict)


def build_audit_request(package_json: dict, package_lock: dict, ignore_dev: bool = False) -> AuditRequest:
    """Merge runtime (and unless ignored, dev) ranges with the lock file graph."""
    requires = dict(package_json.get("dependencies") or {})
    if not ignore_dev:
        requires.update(package_json.get("devDependencies") or {})
    return AuditRequest(
        name=package_json.get("name") or "",
        version=package_json.get("version") or "",
        requires=requires,
        dependencies=package_lock.get("dependencies") or {},
    )


async def fetch_audit_report(
    client: httpx.AsyncClient,
    request: AuditRequest,
    url: str = AUDIT_URL,
) -> dict:
    """POST the audit request and return the JSON report.

    Raises:
        httpx.HTTPError: On transport errors or non-2xx responses.
    """
    response = await client.post(
        url,
        json=request.model_dump(),
        headers={"Content-Type": "application/json"},
    )
    response.raise_for_status()
    report = response.json()
    logger.debug("Audit report for %s has %d advisories", request.name, len(report.get("advisories", {})))
    return report
