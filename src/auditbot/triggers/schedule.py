"""Scheduled fleet audit."""

from typing import Callable

from auditbot.config import AuditbotConfig
from auditbot.orchestrator import audit_fleet, now_ms
from auditbot.status import Status, success
from auditbot.store.state import StateStore

HOUR_MS = 60 * 60 * 1000


async def audit_on_schedule(
    config: AuditbotConfig,
    clock: Callable[[], int] = now_ms,
    **kwargs,
) -> Status:
    """Run the fleet audit unless a repository was processed within the idle window.

    Extra keyword arguments are passed to :func:`audit_fleet`.
    """
    state_store = kwargs.pop("state_store", None) or StateStore(config.storage.home)
    last = state_store.load(config.name).last_processed()
    if clock() - last < config.fleet.idle_hours * HOUR_MS:
        return success("Not passed the required idle time").hidden()
    return await audit_fleet(config, state_store=state_store, clock=clock, **kwargs)
