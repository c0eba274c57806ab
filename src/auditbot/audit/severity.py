"""Severity ordering and advisory filters."""

from typing import Callable, Iterable, Optional, Protocol

from auditbot.audit.schemas import Advisory

# Highest first
LEVELS = ("critical", "high", "moderate", "low", "info")

_RANK = {level: rank for rank, level in enumerate(LEVELS)}


class HasSeverity(Protocol):
    severity: str


def severity_rank(severity: str) -> int:
    """Return the position of ``severity`` in the order; unknown values sort last."""
    return _RANK.get(severity, len(LEVELS))


def filter_by_level(level: Optional[str]) -> Callable[[HasSeverity], bool]:
    """Build a predicate admitting severities at or above ``level``.

    Without a level every advisory is admitted.
    """
    if not level:
        return lambda _: True
    if level not in _RANK:
        raise ValueError(f"Unknown severity level: {level}")
    threshold = _RANK[level]
    return lambda item: severity_rank(item.severity) <= threshold


def is_excluded(
    module: str,
    advisory_id: int,
    excluded_packages: Iterable[str],
    excluded_advisory_ids: Iterable[str],
) -> bool:
    return module in set(excluded_packages) or str(advisory_id) in {
        str(a) for a in excluded_advisory_ids
    }


def partition_by_exclusion(
    advisories: list[Advisory],
    excluded_packages: Iterable[str],
    excluded_advisory_ids: Iterable[str],
) -> tuple[list[Advisory], list[Advisory]]:
    """Split advisories into (included, excluded) by package and advisory id."""
    excluded_packages = list(excluded_packages)
    excluded_advisory_ids = list(excluded_advisory_ids)
    included: list[Advisory] = []
    excluded: list[Advisory] = []
    for advisory in advisories:
        if is_excluded(advisory.module, advisory.id, excluded_packages, excluded_advisory_ids):
            excluded.append(advisory)
        else:
            included.append(advisory)
    return included, excluded
