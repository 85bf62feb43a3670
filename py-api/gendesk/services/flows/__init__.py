"""Guided generation flows."""

from gendesk.services.flows.board import FlowBoard
from gendesk.services.flows.catalog import FLOWS, flow_for
from gendesk.services.flows.runner import FlowRunner
from gendesk.services.flows.wizard import FlowDefinition, FlowState, Phase

__all__ = ["FLOWS", "FlowBoard", "FlowDefinition", "FlowRunner", "FlowState", "Phase", "flow_for"]
