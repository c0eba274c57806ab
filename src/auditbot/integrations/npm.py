"""npm CLI invocation."""

import asyncio
import json
import os
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional

# Lifecycle scripts, funding/audit notices and update checks stay off
SAFE_FLAGS = ("--ignore-scripts", "--no-audit", "--no-fund")
QUIET_ENV = {
    "npm_config_fund": "false",
    "npm_config_update_notifier": "false",
    "DISABLE_OPENCOLLECTIVE": "1",
}


@dataclass
class NpmResult:
    """Captured result of an npm invocation."""

    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


def _env(extra: Optional[dict] = None) -> dict:
    return {**os.environ, **QUIET_ENV, **(extra or {})}


def run_npm(cwd: Path, *args: str, env: Optional[dict] = None) -> NpmResult:
    """Run npm in ``cwd`` and capture stdout verbatim."""
    result = subprocess.run(
        ["npm", *args],
        capture_output=True,
        text=True,
        cwd=cwd,
        env=_env(env),
    )
    return NpmResult(result.returncode, result.stdout or "", result.stderr or "")


def audit_args(production: bool = False, level: Optional[str] = None) -> list[str]:
    args = []
    if production:
        args.append("--production")
    if level:
        args.append(f"--audit-level={level}")
    return args


def audit(cwd: Path, production: bool = False, level: Optional[str] = None) -> NpmResult:
    """Run ``npm audit --json``. A non-zero exit means vulnerabilities were found."""
    return run_npm(cwd, "audit", *audit_args(production, level), "--json")


def outdated(cwd: Path) -> NpmResult:
    """Run ``npm outdated --json``. A non-zero exit means outdated packages exist."""
    return run_npm(cwd, "outdated", "--json")


def install(cwd: Path) -> NpmResult:
    """Install dependencies, from the lock file when there is one."""
    command = "ci" if (cwd / "package-lock.json").exists() else "install"
    return run_npm(cwd, command, *SAFE_FLAGS, env={"NODE_ENV": "development"})


def install_package(
    cwd: Path,
    spec: str,
    dev: bool = False,
    extra: Iterable[str] = (),
) -> NpmResult:
    """Install ``spec`` (``name@version``), optionally as a dev dependency."""
    args = ["install", spec]
    if dev:
        args.append("--save-dev")
    args.extend(extra)
    return run_npm(cwd, *args, *SAFE_FLAGS)


def update_package(cwd: Path, module: str, depth: Optional[int] = None) -> NpmResult:
    """Bump ``module`` in place within its declared range."""
    args = ["update", module]
    if depth is not None:
        args.extend(["--depth", str(depth)])
    return run_npm(cwd, *args, *SAFE_FLAGS)


async def outdated_async(cwd: Path) -> str:
    """Async ``npm outdated --json`` for the fleet audit; returns stdout."""
    process = await asyncio.create_subprocess_exec(
        "npm",
        "outdated",
        "--json",
        cwd=str(cwd),
        env=_env(),
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    stdout, _ = await process.communicate()
    return stdout.decode("utf-8", errors="replace")


def read_manifest(cwd: Path) -> dict:
    """Load ``package.json``; an unreadable manifest is treated as empty."""
    path = cwd / "package.json"
    if not path.exists():
        return {}
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError:
        return {}
    return data if isinstance(data, dict) else {}


def declared_ranges(manifest: dict) -> dict[str, str]:
    """Runtime and dev dependency ranges merged, runtime winning."""
    ranges = dict(manifest.get("devDependencies") or {})
    ranges.update(manifest.get("dependencies") or {})
    return ranges
