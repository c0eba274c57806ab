"""Outcome of a pipeline step or of a whole handler run."""

from dataclasses import dataclass, replace
from typing import Literal, Optional

Outcome = Literal["success", "failure", "abort"]


@dataclass(frozen=True)
class Status:
    """A step/handler outcome.

    ``failure`` is fatal and halts the pipeline. ``abort`` halts the
    pipeline without marking it failed. Hidden statuses are not surfaced
    to users ("nothing to do").
    """

    outcome: Outcome
    message: Optional[str] = None
    visible: bool = True

    def hidden(self) -> "Status":
        return replace(self, visible=False)

    @property
    def halts(self) -> bool:
        return self.outcome in ("failure", "abort")

    @property
    def ok(self) -> bool:
        return self.outcome != "failure"


def success(message: Optional[str] = None) -> Status:
    return Status("success", message)


def failure(message: str) -> Status:
    return Status("failure", message)


def abort(message: Optional[str] = None) -> Status:
    return Status("abort", message)
