"""Inbound gating and agent route resolution.

This package keeps platform acceptance rules away from the forwarding core
and the reply pipeline.  Each rule is encapsulated in a
:class:`ResponseFilter` subclass that gates messages independently.

Architecture
------------
MessageRouter
  └── ResponseFilter (chain)
        ├── DuplicateMessageFilter – already-seen message ids
        ├── SelfMessageFilter      – messages this bot sent itself
        ├── AllowListFilter        – sender allow-list
        └── MentionGateFilter      – group ``mention`` policy

resolve_agent_route
  └── config bindings → AgentRoute(agent_id, session_key)
"""

from botbridge.agent.routing.base import MessageRouter, ResponseFilter
from botbridge.agent.routing.inbound import (
    AllowListFilter,
    DuplicateMessageFilter,
    MentionGateFilter,
    SelfMessageFilter,
    build_inbound_router,
)
from botbridge.agent.routing.resolve import AgentRoute, build_session_key, resolve_agent_route

__all__ = [
    "MessageRouter",
    "ResponseFilter",
    "AllowListFilter",
    "DuplicateMessageFilter",
    "MentionGateFilter",
    "SelfMessageFilter",
    "build_inbound_router",
    "AgentRoute",
    "build_session_key",
    "resolve_agent_route",
]
