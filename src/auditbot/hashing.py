"""Deterministic content hashing for fingerprints."""

import hashlib
import json
from typing import Any


def canonicalize(value: Any) -> str:
    """Serialize a JSON-compatible value with stable key ordering."""
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def hash_value(value: Any) -> str:
    """Return the SHA-256 hex digest of the canonical form of ``value``.

    Semantically equal structures hash identically regardless of the order
    in which their keys were inserted.
    """
    return hashlib.sha256(canonicalize(value).encode("utf-8")).hexdigest()


def strip_run_id(report: dict) -> dict:
    """Return a shallow copy of an audit report without its run identifier."""
    return {k: v for k, v in report.items() if k not in ("runId", "run_id")}


def composite_fingerprint(report: dict, outdated: list[str]) -> str:
    """Fingerprint an audit report together with its outdated-dependency delta."""
    return hash_value({"audit": strip_run_id(report), "outdated": sorted(outdated)})
