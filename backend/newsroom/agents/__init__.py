"""Agents package - enrichment capabilities, routing policy and orchestration."""

from newsroom.agents.base import AgentRunner, AgentSpec, Capability, CapabilityOutcome, StrandsAgentRunner
from newsroom.agents.factory import build_capabilities, build_orchestrator
from newsroom.agents.orchestrator import CapabilitySet, Orchestrator
from newsroom.agents.policy import AgentPolicy, should_use_agent

__all__ = [
    "AgentPolicy",
    "AgentRunner",
    "AgentSpec",
    "Capability",
    "CapabilityOutcome",
    "CapabilitySet",
    "Orchestrator",
    "StrandsAgentRunner",
    "build_capabilities",
    "build_orchestrator",
    "should_use_agent",
]
