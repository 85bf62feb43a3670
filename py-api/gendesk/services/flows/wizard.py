"""Generic wizard state machine shared by every generation flow.

A flow is a set of named steps, each belonging to one phase:

    IDLE -> CONFIGURING (one or more input steps) -> REVIEWING (editable plan)
         -> GENERATING -> COMPLETED

A failure never lands on IDLE: the flow goes back to the input step that
produced the request and carries the error message, which is reported as
the ERROR phase. Chat steps are input steps too (the user keeps typing).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, Optional, Tuple

from gendesk.errors import InvalidTransition

IDLE_STEP = "none"


class Phase(str, Enum):
    IDLE = "idle"
    CONFIGURING = "configuring"
    REVIEWING = "reviewing"
    GENERATING = "generating"
    COMPLETED = "completed"
    ERROR = "error"


@dataclass(frozen=True)
class FlowDefinition:
    """Static description of one flow family."""

    name: str
    steps: Dict[str, Phase]
    transitions: Dict[str, FrozenSet[str]]
    entry_steps: Dict[str, str]
    min_costs: Dict[str, int]
    doc_types: Tuple[str, ...]

    def phase_of(self, step: str) -> Phase:
        if step == IDLE_STEP:
            return Phase.IDLE
        return self.steps[step]

    def entry_step(self, doc_type: str) -> str:
        return self.entry_steps.get(doc_type) or self.entry_steps["*"]

    def min_cost(self, doc_type: str) -> int:
        return self.min_costs.get(doc_type, self.min_costs["*"])

    def can_move(self, from_step: str, to_step: str) -> bool:
        return to_step in self.transitions.get(from_step, frozenset())


@dataclass
class FlowState:
    """Mutable state of one flow instance, owned by a session."""

    flow: str
    step: str = IDLE_STEP
    error: Optional[str] = None
    error_code: Optional[str] = None
    progress: str = ""
    plan: Optional[Dict[str, Any]] = None
    context: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self, definition: FlowDefinition) -> Dict[str, Any]:
        phase = Phase.ERROR if self.error else definition.phase_of(self.step)
        return {
            "flow": self.flow,
            "step": self.step,
            "phase": phase.value,
            "error": self.error,
            "errorCode": self.error_code,
            "progress": self.progress,
            "plan": self.plan,
            "context": self.context,
        }


def move(definition: FlowDefinition, state: FlowState, to_step: str) -> None:
    """Advance ``state`` to ``to_step`` if the transition table allows it."""
    if not definition.can_move(state.step, to_step):
        raise InvalidTransition(
            f"Cannot go from '{state.step}' to '{to_step}' in the {definition.name} flow.",
            flow=definition.name,
            step=state.step,
        )
    state.step = to_step
    state.error = None
    state.error_code = None


def fail(state: FlowState, input_step: str, message: str, error_code: Optional[str] = None) -> None:
    """Return to the input step and keep the error message for the user."""
    state.step = input_step
    state.error = message
    state.error_code = error_code
    state.progress = ""


def require_step(definition: FlowDefinition, state: FlowState, *steps: str) -> None:
    if state.step not in steps:
        raise InvalidTransition(
            f"The {definition.name} flow is at '{state.step}', expected one of: {', '.join(steps)}.",
            flow=definition.name,
            step=state.step,
        )
