"""Export phase definitions: the finite state machine states and transitions."""

from __future__ import annotations

from enum import Enum


class ExportPhase(str, Enum):
    """All valid export phases. FINALIZED is reachable from every other phase
    so that an abnormal exit always ends with the budget released."""

    INIT = "INIT"
    BUDGET_ACQUIRED = "BUDGET_ACQUIRED"
    STREAMING = "STREAMING"
    FINALIZED = "FINALIZED"


VALID_TRANSITIONS: dict[ExportPhase, set[ExportPhase]] = {
    ExportPhase.INIT: {ExportPhase.BUDGET_ACQUIRED, ExportPhase.FINALIZED},
    ExportPhase.BUDGET_ACQUIRED: {ExportPhase.STREAMING, ExportPhase.FINALIZED},
    ExportPhase.STREAMING: {ExportPhase.FINALIZED},
    ExportPhase.FINALIZED: set(),  # terminal
}

TERMINAL_PHASES = {ExportPhase.FINALIZED}
