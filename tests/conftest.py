"""Pytest configuration and fixtures."""

import copy
import json

import pytest

from auditbot.config import AuditbotConfig, StorageSettings
from auditbot.models import Author, Push, RepositoryHandle

ADVISORY = {
    "id": 1179,
    "module_name": "minimist",
    "severity": "moderate",
    "title": "Prototype Pollution",
    "url": "https://npmjs.com/advisories/1179",
    "vulnerable_versions": "<0.2.1 || >=1.0.0 <1.2.3",
    "recommendation": "Upgrade to versions 0.2.1, 1.2.3 or later.",
    "overview": "Affected versions of minimist are vulnerable to prototype pollution.",
    "updated": "2020-03-18T19:41:45.921Z",
    "cves": ["CVE-2020-7598"],
    "findings": [{"version": "1.2.0", "paths": ["mkdirp>minimist"]}],
}

UPDATE_ACTION = {
    "action": "update",
    "module": "minimist",
    "target": "1.2.6",
    "depth": 3,
    "isMajor": False,
    "resolves": [{"id": 1179, "path": "mkdirp>minimist", "dev": False, "optional": False}],
}

CLEAN_REPORT = {
    "runId": "c0ffee",
    "actions": [],
    "advisories": {},
    "muted": [],
    "metadata": {
        "vulnerabilities": {"info": 0, "low": 0, "moderate": 0, "high": 0, "critical": 0},
        "dependencies": 2,
    },
}

V2_REPORT = {
    "auditReportVersion": 2,
    "vulnerabilities": {
        "minimist": {
            "name": "minimist",
            "severity": "critical",
            "isDirect": False,
            "via": [
                {
                    "source": 1179,
                    "name": "minimist",
                    "dependency": "minimist",
                    "title": "Prototype Pollution in minimist",
                    "url": "https://github.com/advisories/GHSA-xvch-5gv4-984h",
                    "severity": "critical",
                    "cwe": ["CWE-1321"],
                    "range": "<0.2.4",
                }
            ],
            "effects": ["mkdirp"],
            "range": "<0.2.4",
            "nodes": ["node_modules/minimist"],
            "fixAvailable": True,
        },
        "mkdirp": {
            "name": "mkdirp",
            "severity": "critical",
            "isDirect": True,
            "via": ["minimist"],
            "effects": [],
            "range": "0.4.1 - 0.5.1",
            "nodes": ["node_modules/mkdirp"],
            "fixAvailable": True,
        },
    },
    "metadata": {
        "vulnerabilities": {"info": 0, "low": 0, "moderate": 0, "high": 0, "critical": 2, "total": 2},
        "dependencies": {"prod": 3, "dev": 0, "total": 3},
    },
}

PACKAGE_JSON = """{
  "name": "demo",
  "version": "1.0.0",
  "dependencies": {
    "mkdirp": "^0.5.1"
  },
  "devDependencies": {
    "jest": "^26.0.0"
  }
}
"""


def vulnerable_report(*actions: dict) -> dict:
    """An npm 6 audit report with the minimist advisory and the given actions."""
    report = copy.deepcopy(CLEAN_REPORT)
    report["runId"] = "deadbeef"
    report["advisories"] = {"1179": copy.deepcopy(ADVISORY)}
    report["actions"] = [copy.deepcopy(a) for a in actions]
    report["metadata"]["vulnerabilities"]["moderate"] = 1
    return report


def as_output(report: dict) -> str:
    return json.dumps(report, indent=2)


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch):
    """Keep tracing off and ignore the developer's auditbot environment."""
    monkeypatch.setenv("LANGCHAIN_TRACING_V2", "false")
    monkeypatch.delenv("LANGSMITH_TRACING", raising=False)
    for key in (
        "AUDITBOT_LEVEL",
        "AUDITBOT_PUSH",
        "AUDITBOT_UPDATE_PUSH",
        "AUDITBOT_FORCE",
        "AUDITBOT_IGNORE_DEV",
        "AUDITBOT_CONCURRENCY",
        "AUDITBOT_MAX_REPOSITORIES",
        "AUDITBOT_WEBHOOK_SECRET",
        "AUDITBOT_HOME",
    ):
        monkeypatch.delenv(key, raising=False)


@pytest.fixture
def repo() -> RepositoryHandle:
    return RepositoryHandle(owner="acme", name="demo", repo_id="101", owner_id="1", default_branch="main")


@pytest.fixture
def push(repo) -> Push:
    return Push(
        repo=repo,
        branch="main",
        sha="abcdef1234567890",
        author=Author(login="octocat", name="Octo Cat", email="octo@example.com"),
    )


@pytest.fixture
def config(tmp_path) -> AuditbotConfig:
    config = AuditbotConfig(storage=StorageSettings(home=tmp_path / "home"))
    config.push.strategy = "pr"
    return config


@pytest.fixture
def checkout(tmp_path):
    """A local checkout with a manifest and lock file."""
    root = tmp_path / "checkout"
    (root / ".git").mkdir(parents=True)
    (root / "package.json").write_text(PACKAGE_JSON)
    (root / "package-lock.json").write_text("{}")
    return root
