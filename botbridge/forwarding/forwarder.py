"""Bot-to-bot mention forwarding.

When a bot sends a group message that mentions another bot running in this
process, the platform never delivers that message to the other bot.  The
forwarder re-injects it: for each mentioned bot it builds a synthetic inbound
envelope and submits it straight to the reply pipeline, skipping the inbound
filter chain (the envelope is pre-authorized because the mention was already
established).

Example: Manager sends "@Reviewer please review this" → Reviewer's agent
receives "Manager: @Reviewer please review this" as a new message.

Forwarding is fire-and-forget.  Nothing raised here ever reaches the send
path it is attached to.
"""

from __future__ import annotations

import asyncio
import time
import uuid
from typing import TYPE_CHECKING, Callable

from loguru import logger

from botbridge.agent.pipeline import DispatchSummary, ReplyDispatcher
from botbridge.agent.routing.resolve import AgentRoute, resolve_agent_route
from botbridge.bus.events import InboundMessage
from botbridge.forwarding.decision import GROUP_CHAT, ForwardDecision, decide_forward
from botbridge.forwarding.guard import ForwardPermit, RecursionGuard
from botbridge.forwarding.mention import MentionExtractor, MentionTarget
from botbridge.forwarding.registry import IdentityRegistry

if TYPE_CHECKING:
    from botbridge.config.schema import Config

RouteResolver = Callable[["Config", str, str, str, str], AgentRoute]


def synthetic_message_id() -> str:
    return f"synthetic_{int(time.time() * 1000)}_{uuid.uuid4().hex[:12]}"


class MentionForwarder:
    """Forward outgoing group messages to the bots they mention."""

    def __init__(
        self,
        registry: IdentityRegistry,
        pipeline: ReplyDispatcher,
        guard: RecursionGuard | None = None,
        *,
        channel: str = "feishu",
        route_resolver: RouteResolver = resolve_agent_route,
    ) -> None:
        self.registry = registry
        self.pipeline = pipeline
        self.guard = guard or RecursionGuard()
        self.channel = channel
        self.extractor = MentionExtractor(registry)
        self.route_resolver = route_resolver
        self._tasks: set[asyncio.Task[None]] = set()

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def forward(
        self,
        config: "Config",
        text: str,
        chat_id: str,
        chat_type: str,
        sender_account_id: str,
    ) -> None:
        """Forward ``text`` to every bot it mentions; returns once all dispatches finish."""
        admitted = self._admit(config, text, chat_id, chat_type, sender_account_id)
        if admitted is None:
            return
        decision, permit = admitted
        await self._run(config, text, chat_id, sender_account_id, decision, permit)

    def schedule(
        self,
        config: "Config",
        text: str,
        chat_id: str,
        chat_type: str,
        sender_account_id: str,
    ) -> asyncio.Task[None] | None:
        """
        Fire-and-forget variant of :meth:`forward` for the send path.

        Eligibility and guard admission run synchronously, so the guard
        depth is raised before the caller resumes.
        """
        admitted = self._admit(config, text, chat_id, chat_type, sender_account_id)
        if admitted is None:
            return None
        decision, permit = admitted
        coro = self._run(config, text, chat_id, sender_account_id, decision, permit)
        try:
            task = asyncio.create_task(coro)
        except RuntimeError as e:
            coro.close()
            permit.release()
            logger.error(f"{self.channel}[{sender_account_id}]: cannot schedule forwarding: {e}")
            return None
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        # A task cancelled before its first step never enters _run
        task.add_done_callback(lambda _t: permit.release())
        return task

    async def drain(self) -> None:
        """Wait for every scheduled forward to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _admit(
        self,
        config: "Config",
        text: str,
        chat_id: str,
        chat_type: str,
        sender_account_id: str,
    ) -> tuple[ForwardDecision, ForwardPermit] | None:
        try:
            if config is not None and not config.channels.feishu.forwarding.enabled:
                return None
            decision = decide_forward(self.extractor, text, chat_type, sender_account_id)
            if not decision.eligible:
                logger.debug(
                    f"{self.channel}[{sender_account_id}]: not forwarding ({decision.reason})"
                )
                return None
            permit = self.guard.acquire(chat_id)
            if permit is None:
                return None
            return decision, permit
        except Exception as e:
            logger.error(f"{self.channel}[{sender_account_id}]: forwarding check failed: {e}")
            return None

    async def _run(
        self,
        config: "Config",
        text: str,
        chat_id: str,
        sender_account_id: str,
        decision: ForwardDecision,
        permit: ForwardPermit,
    ) -> None:
        with permit:
            for target_account_id, target in decision.targets.items():
                logger.info(
                    f"{self.channel}[{sender_account_id}]: forwarding mention to bot "
                    f"{target.open_id} (account: {target_account_id})"
                )
                try:
                    summary = await self._dispatch_one(
                        config, text, chat_id, sender_account_id, target_account_id, target
                    )
                    logger.debug(
                        f"{self.channel}[{sender_account_id}]: forwarded to {target_account_id} "
                        f"(queued={summary.queued}, sent={summary.sent})"
                    )
                except Exception as e:
                    logger.error(
                        f"{self.channel}[{sender_account_id}]: error forwarding message "
                        f"to {target_account_id}: {e}"
                    )

    async def _dispatch_one(
        self,
        config: "Config",
        text: str,
        chat_id: str,
        sender_account_id: str,
        target_account_id: str,
        target: MentionTarget,
    ) -> DispatchSummary:
        route = self.route_resolver(config, self.channel, target_account_id, chat_id, GROUP_CHAT)
        envelope = self.build_envelope(
            text, chat_id, sender_account_id, target_account_id, target, route
        )
        return await self.pipeline.dispatch(envelope)

    def build_envelope(
        self,
        text: str,
        chat_id: str,
        sender_account_id: str,
        target_account_id: str,
        target: MentionTarget,
        route: AgentRoute,
    ) -> InboundMessage:
        """Synthetic inbound message that the target bot's agent will see."""
        sender_name = self.registry.display_name(sender_account_id)
        sender_ids = self.registry.list_identifiers(sender_account_id)
        return InboundMessage(
            channel=self.channel,
            sender_id=sender_ids[0] if sender_ids else "unknown",
            chat_id=chat_id,
            content=f"{sender_name}: {text}",
            raw_content=text,
            account_id=target_account_id,
            message_id=synthetic_message_id(),
            agent_id=route.agent_id,
            session=route.session_key,
            metadata={
                "chat_type": GROUP_CHAT,
                "msg_type": "text",
                "was_mentioned": True,
                "is_mentioned": True,
                "from_bot": True,
                "forwarded": True,
                "sender_account_id": sender_account_id,
                "sender_name": sender_name,
                "mentions": [
                    {"key": target.key, "id": {"open_id": target.open_id}, "name": target.name}
                ],
            },
        )
