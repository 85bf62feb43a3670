"""Per-session generator state: selected document type, flow states and the current result."""

from __future__ import annotations

from typing import Any, Dict, Optional

from gendesk.errors import InvalidTransition
from gendesk.models import DEFAULT_CHILD_AGE, DocumentType
from gendesk.services.flows.catalog import FLOWS, flow_for
from gendesk.services.flows.wizard import FlowState


class FlowBoard:
    """Everything the generator view shows, discarded on reset, logout or navigation."""

    def __init__(self) -> None:
        self.doc_type: str = DocumentType.COMPOSITION.value
        self.age: int = DEFAULT_CHILD_AGE
        self.flows: Dict[str, FlowState] = {}
        self.result: Optional[Dict[str, Any]] = None
        self.notice: Optional[str] = None
        self.error: Optional[str] = None
        self.error_code: Optional[str] = None
        self.loading = False
        self.progress = ""
        self.reset()

    def reset(self) -> None:
        """Return every flow to Idle.

        Flow states are replaced, not mutated, so a request still holding
        the old state object can tell it has been detached.
        """
        self.flows = {name: FlowState(flow=name) for name in FLOWS}
        self.result = None
        self.notice = None
        self.error = None
        self.error_code = None
        self.loading = False
        self.progress = ""

    def state(self, flow: str) -> FlowState:
        if flow not in self.flows:
            raise InvalidTransition(f"Unknown flow: {flow}", flow=flow)
        return self.flows[flow]

    def is_current(self, state: FlowState) -> bool:
        return self.flows.get(state.flow) is state

    def select(self, doc_type: str, age: Optional[int] = None) -> None:
        self.reset()
        self.doc_type = doc_type
        if age is not None:
            self.age = age

    def to_dict(self) -> Dict[str, Any]:
        definition = flow_for(self.doc_type)
        return {
            "docType": self.doc_type,
            "flow": definition.name if definition else None,
            "age": self.age,
            "result": self.result,
            "notice": self.notice,
            "error": self.error,
            "errorCode": self.error_code,
            "loading": self.loading,
            "progress": self.progress,
            "flows": {name: state.to_dict(FLOWS[name]) for name, state in self.flows.items()},
        }
