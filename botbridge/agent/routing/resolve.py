"""Agent route resolution from config bindings."""

from __future__ import annotations

from dataclasses import dataclass

from botbridge.config.schema import AgentBinding, Config


@dataclass(frozen=True)
class AgentRoute:
    agent_id: str
    session_key: str
    matched_by: str  # peer | account | channel | default


def build_session_key(agent_id: str, channel: str, chat_type: str, peer_id: str) -> str:
    """Session key, e.g. ``agent:reviewer:feishu:group:oc_xxx``."""
    kind = "group" if chat_type == "group" else "dm"
    return f"agent:{agent_id}:{channel}:{kind}:{peer_id}"


def _binding_rank(
    binding: AgentBinding,
    channel: str,
    account_id: str,
    peer_id: str,
    chat_type: str,
) -> tuple[int, str] | None:
    match = binding.match
    if match.channel != channel:
        return None
    if match.account_id is not None and match.account_id != account_id:
        return None
    if match.peer is not None:
        kind = "group" if chat_type == "group" else "dm"
        if match.peer.id != peer_id or match.peer.kind != kind:
            return None
        return 3, "peer"
    if match.account_id is not None:
        return 2, "account"
    return 1, "channel"


def resolve_agent_route(
    config: Config,
    channel: str,
    account_id: str,
    peer_id: str,
    chat_type: str = "group",
) -> AgentRoute:
    """
    Pick the agent that answers for ``account_id`` in conversation ``peer_id``.

    The most specific binding wins (peer > account > channel); ties go to
    the binding listed first.  Without a match the configured default agent
    is used.
    """
    best: tuple[int, str, AgentBinding] | None = None
    for binding in config.bindings:
        rank = _binding_rank(binding, channel, account_id, peer_id, chat_type)
        if rank is None:
            continue
        if best is None or rank[0] > best[0]:
            best = (rank[0], rank[1], binding)

    if best is not None:
        agent_id, matched_by = best[2].agent_id, best[1]
    else:
        agent_id, matched_by = config.agents.default, "default"

    return AgentRoute(
        agent_id=agent_id,
        session_key=build_session_key(agent_id, channel, chat_type, peer_id),
        matched_by=matched_by,
    )
