"""Fingerprint store: per repository and branch head, typed content digests."""

import threading
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Optional

from pydantic import BaseModel

from auditbot.models import RepositoryHandle
from auditbot.store.jsonfile import read_json, write_json

AUDIT_REPORT_TYPE = "npm-audit-report"
DEPENDENCY_TYPE = "npm-dependencies"


class FingerprintRecord(BaseModel):
    """A typed digest recorded for a branch head."""

    type: str
    name: str
    sha: str
    data: str = ""


@dataclass
class HeadFingerprints:
    """Fingerprints of one type recorded on a repository's default branch head."""

    repo: RepositoryHandle
    branch: str
    commit: Optional[str]
    records: list[FingerprintRecord]


class FingerprintStore:
    """JSON-file backed fingerprint store.

    Layout: ``{repo_id: {"repo": {...}, "branches": {branch: {"commit",
    "is_default", "fingerprints": {type: [record, ...]}}}}}``.
    """

    def __init__(self, home: Path) -> None:
        self._path = home / "fingerprints.json"
        self._lock = threading.Lock()

    def _read(self) -> dict:
        data = read_json(self._path)
        return data if isinstance(data, dict) else {}

    def add_fingerprints(
        self,
        repo: RepositoryHandle,
        branch: str,
        commit: Optional[str],
        is_default_branch: bool,
        type: str,
        additions: list[FingerprintRecord],
    ) -> None:
        """Record ``additions`` as the current fingerprints of ``type`` for the branch head."""
        with self._lock:
            data = self._read()
            entry = data.setdefault(repo.repo_id, {"branches": {}})
            entry["repo"] = asdict(repo)
            branch_entry = entry["branches"].setdefault(branch, {"fingerprints": {}})
            branch_entry["commit"] = commit
            branch_entry["is_default"] = is_default_branch
            branch_entry["fingerprints"][type] = [r.model_dump() for r in additions]
            write_json(self._path, data)

    def records(self, repo_id: str, branch: str, type: str) -> list[FingerprintRecord]:
        with self._lock:
            data = self._read()
        branch_entry = data.get(repo_id, {}).get("branches", {}).get(branch, {})
        return [
            FingerprintRecord.model_validate(r)
            for r in branch_entry.get("fingerprints", {}).get(type, [])
        ]

    def latest(self, repo_id: str, branch: str, type: str, name: Optional[str] = None) -> Optional[str]:
        """Return the sha last recorded for ``type`` (and ``name``) on the branch."""
        for record in self.records(repo_id, branch, type):
            if name is None or record.name == name:
                return record.sha
        return None

    def head_fingerprints(self, type: str, name: Optional[str] = None) -> list[HeadFingerprints]:
        """Most recent fingerprints of ``type`` on each repository's default branch."""
        with self._lock:
            data = self._read()
        heads = []
        for entry in data.values():
            if "repo" not in entry:
                continue
            repo = RepositoryHandle(**entry["repo"])
            for branch, branch_entry in entry.get("branches", {}).items():
                if not branch_entry.get("is_default"):
                    continue
                records = [
                    FingerprintRecord.model_validate(r)
                    for r in branch_entry.get("fingerprints", {}).get(type, [])
                    if name is None or r.get("name") == name
                ]
                if records:
                    heads.append(
                        HeadFingerprints(
                            repo=repo,
                            branch=branch,
                            commit=branch_entry.get("commit"),
                            records=records,
                        )
                    )
        return heads

    def remove_fingerprints(self, repo_id: str, branch: str, type: str) -> None:
        """Forget the records of ``type`` for the branch head."""
        with self._lock:
            data = self._read()
            branch_entry = data.get(repo_id, {}).get("branches", {}).get(branch, {})
            if branch_entry.get("fingerprints", {}).pop(type, None) is not None:
                write_json(self._path, data)
