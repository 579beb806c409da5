"""Channel manager: runs every enabled bot account in one process."""

import asyncio

from loguru import logger

from botbridge.agent.pipeline import AgentHandler, ReplyPipeline
from botbridge.bus.events import OutboundMessage
from botbridge.channels.feishu import FeishuChannel
from botbridge.config.schema import Config
from botbridge.forwarding.forwarder import MentionForwarder
from botbridge.forwarding.guard import RecursionGuard
from botbridge.forwarding.registry import IdentityRegistry


class ChannelManager:
    """
    Owns the channels of all enabled accounts and the state they share.

    The identity registry, recursion guard and forwarder are created here
    and injected into each channel, so several managers (or tests) can run
    side by side without sharing module-level state.
    """

    def __init__(self, config: Config, pipeline: ReplyPipeline | None = None):
        self.config = config
        self.registry = IdentityRegistry()
        self.guard = RecursionGuard(config.channels.feishu.forwarding.max_depth)
        self.pipeline = pipeline or ReplyPipeline()
        self.pipeline.set_deliver(self.send)
        self.forwarder = MentionForwarder(self.registry, self.pipeline, self.guard)
        self.channels: dict[str, FeishuChannel] = {}
        self._init_channels()

    def _init_channels(self) -> None:
        feishu = self.config.channels.feishu
        if not feishu.enabled:
            return
        for account_id, account in feishu.enabled_accounts().items():
            self.channels[account_id] = FeishuChannel(
                account_id,
                account,
                self.config,
                self.registry,
                self.pipeline,
                forwarder=self.forwarder,
            )

    def register_agent(self, agent_id: str, handler: AgentHandler) -> None:
        self.pipeline.register_agent(agent_id, handler)

    async def start_all(self) -> None:
        """Start all enabled accounts in parallel (runs until stopped)."""
        if not self.channels:
            logger.warning("No enabled Feishu accounts configured")
            return
        logger.info(
            f"feishu: starting {len(self.channels)} account(s): {', '.join(self.channels)}"
        )
        results = await asyncio.gather(
            *(channel.start() for channel in self.channels.values()),
            return_exceptions=True,
        )
        for account_id, result in zip(self.channels, results):
            if isinstance(result, Exception):
                logger.error(f"feishu[{account_id}]: failed to start: {result}")

    async def stop_all(self) -> None:
        """Stop every account and reset shared forwarding state."""
        for account_id, channel in self.channels.items():
            try:
                await channel.stop()
            except Exception as e:
                logger.error(f"feishu[{account_id}]: error stopping channel: {e}")
        await self.forwarder.drain()
        self.registry.clear()
        self.guard.clear()

    async def send(self, msg: OutboundMessage) -> None:
        """Send through the channel of the account that owns the message."""
        channel = self.channels.get(msg.account_id)
        if channel is None:
            logger.warning(f"Unknown account '{msg.account_id}'; dropping outbound message")
            return
        await channel.send(msg)
