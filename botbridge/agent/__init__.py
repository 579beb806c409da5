"""Agent-side plumbing: inbound gating, routing and the reply pipeline."""

from botbridge.agent.pipeline import DispatchSummary, ReplyPipeline, UnknownAgentError
from botbridge.agent.routing import AgentRoute, MessageRouter, ResponseFilter, resolve_agent_route

__all__ = [
    "DispatchSummary",
    "ReplyPipeline",
    "UnknownAgentError",
    "AgentRoute",
    "MessageRouter",
    "ResponseFilter",
    "resolve_agent_route",
]
