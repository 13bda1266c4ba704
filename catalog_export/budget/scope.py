"""Resource budget scope: elevated process ceilings with guaranteed restoration.

The memory and execution-time ceilings are process-wide mutable state. The
only mutation path is a ResourceBudgetScope: it snapshots both ceilings,
raises them for the duration of an export and restores the snapshot exactly
once. Overlapping scopes (concurrent exports) share the snapshot taken by the
first one in, and only the last one out restores it. Restoration is
registered with ``weakref.finalize`` before anything is changed, so it also
runs when the scope is collected without an explicit release (aborted
generators, dropped responses) and at interpreter shutdown.

Failing to raise a ceiling is never fatal: it is logged and the export runs
under whatever limits the process already had.
"""

from __future__ import annotations

import logging
import resource
import threading
import weakref
from typing import Protocol

from catalog_export.telemetry.errors import ErrorCode, emit_structured_error

logger = logging.getLogger(__name__)


class ProcessLimits(Protocol):
    """Read/write access to the process ceilings. ``None`` means unlimited."""

    def memory_ceiling(self) -> int | None: ...

    def set_memory_ceiling(self, value: int | None) -> None: ...

    def time_ceiling(self) -> int | None: ...

    def set_time_ceiling(self, value: int | None) -> None: ...


class RlimitProcessLimits:
    """ProcessLimits over the soft RLIMIT_AS (bytes) and RLIMIT_CPU (seconds).

    Hard limits are never touched, so restoring a previously lowered soft
    limit is always permitted.

    Every instance addresses the same process ceilings, so all instances
    compare equal and overlapping scopes share one baseline.
    """

    def __eq__(self, other: object) -> bool:
        return isinstance(other, RlimitProcessLimits)

    def __hash__(self) -> int:
        return hash(RlimitProcessLimits)

    def memory_ceiling(self) -> int | None:
        return self._get(resource.RLIMIT_AS)

    def set_memory_ceiling(self, value: int | None) -> None:
        self._set(resource.RLIMIT_AS, value)

    def time_ceiling(self) -> int | None:
        return self._get(resource.RLIMIT_CPU)

    def set_time_ceiling(self, value: int | None) -> None:
        self._set(resource.RLIMIT_CPU, value)

    @staticmethod
    def _get(which: int) -> int | None:
        soft, _ = resource.getrlimit(which)
        return None if soft == resource.RLIM_INFINITY else soft

    @staticmethod
    def _set(which: int, value: int | None) -> None:
        _, hard = resource.getrlimit(which)
        soft = resource.RLIM_INFINITY if value is None else value
        resource.setrlimit(which, (soft, hard))


def _raises_ceiling(current: int | None, requested: int | None) -> bool:
    if current is None:
        return False
    if requested is None:
        return True
    return requested > current


def _restore(limits: ProcessLimits, memory_ceiling: int | None, time_ceiling: int | None) -> bool:
    restored = True
    for name, setter, value in (
        ("memory", limits.set_memory_ceiling, memory_ceiling),
        ("time", limits.set_time_ceiling, time_ceiling),
    ):
        try:
            setter(value)
        except (OSError, ValueError) as exc:
            restored = False
            emit_structured_error(
                logger,
                code=ErrorCode.RESOURCE_LIMIT_RESTORE_FAILED,
                message=str(exc),
                suppressed=True,
                details={"ceiling": name, "value": value},
            )
    return restored


class _Hold:
    """Baseline ceilings shared by every scope open on the same limits."""

    def __init__(self, memory_ceiling: int | None, time_ceiling: int | None) -> None:
        self.memory_ceiling = memory_ceiling
        self.time_ceiling = time_ceiling
        self.scopes = 0


# Reentrant: a finalizer may run on a thread that already holds the lock.
_holds_lock = threading.RLock()
_holds: dict[ProcessLimits, _Hold] = {}


def _join(limits: ProcessLimits) -> _Hold:
    hold = _holds.get(limits)
    if hold is None:
        hold = _holds[limits] = _Hold(limits.memory_ceiling(), limits.time_ceiling())
    hold.scopes += 1
    return hold


def _leave(limits: ProcessLimits) -> bool:
    with _holds_lock:
        hold = _holds[limits]
        hold.scopes -= 1
        if hold.scopes:
            return True
        del _holds[limits]
        return _restore(limits, hold.memory_ceiling, hold.time_ceiling)


class ResourceBudgetScope:
    """Holds elevated ceilings until ``release()`` (or finalization).

    Scopes that overlap on the same limits share one baseline: the first to
    open snapshots the ceilings and the last to close restores them.
    """

    def __init__(
        self,
        limits: ProcessLimits,
        memory_ceiling: int | None,
        time_ceiling: int | None,
    ) -> None:
        with _holds_lock:
            hold = _join(limits)
            self._original_memory = hold.memory_ceiling
            self._original_time = hold.time_ceiling
            self._finalizer = weakref.finalize(self, _leave, limits)
            self.applied = self._apply(limits, memory_ceiling, time_ceiling)

    @classmethod
    def enter(
        cls,
        limits: ProcessLimits,
        memory_ceiling: int | None,
        time_ceiling: int | None,
    ) -> ResourceBudgetScope:
        return cls(limits, memory_ceiling, time_ceiling)

    @property
    def original_memory_ceiling(self) -> int | None:
        return self._original_memory

    @property
    def original_time_ceiling(self) -> int | None:
        return self._original_time

    @property
    def active(self) -> bool:
        return self._finalizer.alive

    def release(self) -> bool:
        """Leave the scope; the last open scope restores the original ceilings.

        Only the first call has any effect.
        """
        return bool(self._finalizer())

    def __enter__(self) -> ResourceBudgetScope:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.release()

    def _apply(
        self,
        limits: ProcessLimits,
        memory_ceiling: int | None,
        time_ceiling: int | None,
    ) -> bool:
        applied = True
        for name, setter, current, requested in (
            ("memory", limits.set_memory_ceiling, limits.memory_ceiling(), memory_ceiling),
            ("time", limits.set_time_ceiling, limits.time_ceiling(), time_ceiling),
        ):
            if not _raises_ceiling(current, requested):
                continue
            try:
                setter(requested)
            except (OSError, ValueError) as exc:
                applied = False
                emit_structured_error(
                    logger,
                    code=ErrorCode.RESOURCE_LIMIT_APPLY_FAILED,
                    message=str(exc),
                    suppressed=True,
                    details={"ceiling": name, "current": current, "requested": requested},
                )
        return applied
