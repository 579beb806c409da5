"""Base channel interface for chat platforms."""

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

from loguru import logger

from botbridge.agent.pipeline import DispatchSummary, ReplyDispatcher
from botbridge.agent.routing.base import MessageRouter
from botbridge.agent.routing.resolve import resolve_agent_route
from botbridge.bus.events import InboundMessage, OutboundMessage

if TYPE_CHECKING:
    from botbridge.config.schema import Config


class BaseChannel(ABC):
    """
    Abstract base class for one bot account on a chat platform.

    Platform messages go through the account's inbound :class:`MessageRouter`
    before being routed to an agent and handed to the reply pipeline.
    """

    name: str = "base"

    def __init__(
        self,
        account_id: str,
        config: "Config",
        pipeline: ReplyDispatcher,
        router: MessageRouter | None = None,
    ):
        self.account_id = account_id
        self.root_config = config
        self.pipeline = pipeline
        self.router = router or MessageRouter()
        self._running = False

    @abstractmethod
    async def start(self) -> None:
        """Connect to the platform and listen for messages (long running)."""

    @abstractmethod
    async def stop(self) -> None:
        """Disconnect and clean up."""

    @abstractmethod
    async def send(self, msg: OutboundMessage) -> None:
        """Send a message through this account."""

    async def _on_accepted(self, msg: InboundMessage) -> None:
        """Hook run once a platform message passes the inbound filters."""

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def log_prefix(self) -> str:
        return f"{self.name}[{self.account_id}]"

    async def _handle_message(
        self,
        sender_id: str,
        chat_id: str,
        content: str,
        message_id: str = "",
        media: list[str] | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> DispatchSummary | None:
        """
        Gate, route and dispatch a platform-delivered message.

        Returns:
            The pipeline summary, or None if the message was filtered out.
        """
        meta = metadata or {}
        msg = InboundMessage(
            channel=self.name,
            sender_id=str(sender_id),
            chat_id=str(chat_id),
            content=content,
            account_id=self.account_id,
            message_id=message_id,
            media=media or [],
            metadata=meta,
        )

        if not await self.router.should_respond(msg):
            return None
        await self._on_accepted(msg)

        route = resolve_agent_route(
            self.root_config, self.name, self.account_id, msg.chat_id, msg.chat_type
        )
        msg.agent_id = route.agent_id
        msg.session = route.session_key

        try:
            return await self.pipeline.dispatch(msg)
        except Exception as e:
            logger.error(f"{self.log_prefix}: error handling message: {e}")
            return None
