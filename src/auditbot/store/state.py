"""Persisted per-repository fleet audit state."""

import logging
import re
import threading
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Optional

from auditbot.store.jsonfile import read_json, write_json

logger = logging.getLogger(__name__)

STATE_VERSION = 2
LEGACY_KEYS = ("lastRun", "excludes")


@dataclass
class RepositoryState:
    processed: int = 0  # epoch milliseconds
    excluded: bool = False


@dataclass
class AuditState:
    """Mapping of repository id to its last processing time and exclusion flag."""

    repositories: dict[str, RepositoryState] = field(default_factory=dict)

    def get(self, repo_id: str) -> RepositoryState:
        return self.repositories.get(repo_id, RepositoryState())

    def is_excluded(self, repo_id: str) -> bool:
        return self.get(repo_id).excluded

    def mark(self, repo_id: str, processed: int, excluded: Optional[bool] = None) -> None:
        current = self.get(repo_id)
        self.repositories[repo_id] = RepositoryState(
            processed=processed,
            excluded=current.excluded if excluded is None else excluded,
        )

    def last_processed(self) -> int:
        return max((r.processed for r in self.repositories.values()), default=0)

    def to_dict(self) -> dict:
        return {
            "version": STATE_VERSION,
            "repositories": {k: asdict(v) for k, v in sorted(self.repositories.items())},
        }

    @classmethod
    def from_dict(cls, data: dict) -> "AuditState":
        repositories = {}
        for repo_id, entry in (data.get("repositories") or {}).items():
            if not isinstance(entry, dict):
                continue
            repositories[str(repo_id)] = RepositoryState(
                processed=int(entry.get("processed") or 0),
                excluded=bool(entry.get("excluded", False)),
            )
        return cls(repositories=repositories)


class StateStore:
    """Stores one ``AuditState`` per configuration name under ``home/state``."""

    def __init__(self, home: Path) -> None:
        self._dir = home / "state"
        self._lock = threading.Lock()

    def path(self, name: str) -> Path:
        safe = re.sub(r"[^A-Za-z0-9_.-]", "_", name)
        return self._dir / f"{safe}.json"

    def load(self, name: str) -> AuditState:
        """Hydrate state, defaulting to empty and migrating legacy documents."""
        with self._lock:
            data = read_json(self.path(name))
        if not isinstance(data, dict):
            return AuditState()

        state = AuditState.from_dict(data)
        if any(key in data for key in LEGACY_KEYS) or data.get("version") != STATE_VERSION:
            logger.info("Migrating audit state '%s' to version %d", name, STATE_VERSION)
            self.save(name, state)
        return state

    def save(self, name: str, state: AuditState) -> None:
        with self._lock:
            write_json(self.path(name), state.to_dict())

    def reset(self, name: str) -> None:
        with self._lock:
            self.path(name).unlink(missing_ok=True)
