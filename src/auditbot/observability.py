"""Observability utilities for pipeline steps.

Provides logging, timing, and tracing for remediation steps.
"""

import functools
import sys
import time
from typing import Any, Callable, TypeVar

from langsmith import traceable

F = TypeVar("F", bound=Callable[..., Any])


def _log(message: str, level: str = "info", step: str = "step") -> None:
    """Log message to stderr for CI log visibility."""
    prefix = {
        "info": "ℹ️",
        "success": "✅",
        "error": "❌",
        "warning": "⚠️",
        "start": "🚀",
        "end": "🏁",
        "skip": "⏭️",
    }.get(level, "")
    print(f"{prefix} [{step}] {message}", file=sys.stderr, flush=True)


def traced_step(
    name: str,
    *,
    run_type: str = "chain",
) -> Callable[[F], F]:
    """Decorator to add tracing and logging to a step's run function.

    Combines LangSmith tracing with timing and logging for observability.

    Args:
        name: Name for the trace (e.g., "audit", "fix").
        run_type: LangSmith run type ("chain", "tool").

    Example:
        @traced_step("audit")
        def run_audit(ctx, params) -> Status:
            ...
    """

    def decorator(func: F) -> F:
        traced_func = traceable(name=name, run_type=run_type)(func)

        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            _log("Starting...", "start", name)
            start_time = time.perf_counter()

            try:
                result = traced_func(*args, **kwargs)

                elapsed = time.perf_counter() - start_time
                elapsed_str = (
                    f"{elapsed:.2f}s" if elapsed >= 1 else f"{elapsed * 1000:.0f}ms"
                )
                outcome = getattr(result, "outcome", None)
                level = "error" if outcome == "failure" else "success"
                detail = f", {outcome}" if outcome else ""
                _log(f"Completed in {elapsed_str}{detail}", level, name)

                return result

            except Exception as e:
                elapsed = time.perf_counter() - start_time
                _log(f"Failed after {elapsed:.2f}s: {e}", "error", name)
                raise

        return wrapper  # type: ignore

    return decorator


def log_step_event(step: str, event: str, level: str = "info", **data: Any) -> None:
    """Log a custom event from within a step.

    Args:
        step: Step name.
        event: Event description.
        level: Log level (info, success, error, warning, skip).
        **data: Additional data to log.

    Example:
        log_step_event("fix", "applying action", module="lodash")
    """
    if data:
        data_str = ", ".join(f"{k}={v}" for k, v in data.items())
        _log(f"{event} ({data_str})", level, step)
    else:
        _log(event, level, step)
