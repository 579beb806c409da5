"""Feishu/Lark channel implementation using lark-oapi SDK with WebSocket long connection."""

import asyncio
import json
import re
import threading
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import httpx
import lark_oapi as lark
from lark_oapi.api.im.v1 import (
    CreateMessageReactionRequest,
    CreateMessageReactionRequestBody,
    CreateMessageRequest,
    CreateMessageRequestBody,
    Emoji,
    P2ImMessageReceiveV1,
)
from loguru import logger

from botbridge.agent.pipeline import ReplyDispatcher
from botbridge.agent.routing.inbound import build_inbound_router
from botbridge.bus.events import InboundMessage, OutboundMessage
from botbridge.channels.base import BaseChannel
from botbridge.config.schema import FeishuAccountConfig
from botbridge.forwarding.forwarder import MentionForwarder
from botbridge.forwarding.mention import (
    MentionTarget,
    extract_mention_targets,
    extract_message_body,
    format_mention_for_card,
    name_pattern,
)
from botbridge.forwarding.registry import IdentityRegistry

if TYPE_CHECKING:
    from botbridge.config.schema import Config

FEISHU_API_BASE = "https://open.feishu.cn/open-apis"

# Message type display mapping
MSG_TYPE_MAP = {
    "image": "[image]",
    "audio": "[audio]",
    "file": "[file]",
    "sticker": "[sticker]",
}


@dataclass
class BotIdentity:
    """Identifiers the platform uses for one bot."""

    open_id: str = ""
    user_id: str = ""
    union_id: str = ""
    bot_name: str = ""

    @property
    def alternates(self) -> list[str]:
        return [v for v in (self.user_id, self.union_id) if v]


def parse_bot_info(data: dict[str, Any]) -> BotIdentity | None:
    """Extract a :class:`BotIdentity` from a ``bot/v3/info`` response body."""
    if data.get("code", 0) != 0:
        return None
    bot = data.get("bot") or (data.get("data") or {}).get("bot") or {}
    open_id = bot.get("open_id")
    if not open_id:
        return None
    return BotIdentity(
        open_id=open_id,
        user_id=bot.get("user_id") or "",
        union_id=bot.get("union_id") or "",
        bot_name=bot.get("bot_name") or bot.get("app_name") or "",
    )


async def probe_bot_identity(
    app_id: str,
    app_secret: str,
    retries: int = 3,
    delay: float = 2.0,
    transport: httpx.AsyncBaseTransport | None = None,
) -> BotIdentity | None:
    """
    Fetch a bot's own identity via GET /open-apis/bot/v3/info.

    Obtains a tenant_access_token first, then queries the bot info API.
    Retries on failure.

    Returns:
        The bot identity, or None on failure.
    """
    if not app_id or not app_secret:
        logger.warning("Feishu probe skipped: missing credentials (app_id, app_secret)")
        return None

    for attempt in range(1, retries + 1):
        try:
            async with httpx.AsyncClient(timeout=10, transport=transport) as http:
                # Step 1: get tenant_access_token
                token_resp = await http.post(
                    f"{FEISHU_API_BASE}/auth/v3/tenant_access_token/internal",
                    json={"app_id": app_id, "app_secret": app_secret},
                )
                token_data = token_resp.json()
                token = token_data.get("tenant_access_token")
                if not token:
                    logger.warning(
                        f"[attempt {attempt}/{retries}] Could not obtain tenant_access_token: "
                        f"{token_data}"
                    )
                else:
                    # Step 2: get bot info
                    resp = await http.get(
                        f"{FEISHU_API_BASE}/bot/v3/info",
                        headers={"Authorization": f"Bearer {token}"},
                    )
                    if resp.status_code == 200:
                        identity = parse_bot_info(resp.json())
                        if identity:
                            return identity
                        logger.warning(
                            f"[attempt {attempt}/{retries}] Bot info response missing open_id: "
                            f"{resp.text[:200]}"
                        )
                    else:
                        logger.warning(
                            f"[attempt {attempt}/{retries}] Fetch bot info failed: "
                            f"status={resp.status_code}, body={resp.text[:200]}"
                        )
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"[attempt {attempt}/{retries}] Error fetching bot info: {e}")

        if attempt < retries:
            await asyncio.sleep(delay)

    return None


def detect_chat_type(chat_id: str, metadata: dict[str, Any] | None = None) -> str:
    """
    Conversation type of an outbound message.

    Replies carry the inbound ``chat_type`` in their metadata.  Direct chats
    also have ``oc_`` ids, so the id prefix is only a fallback.
    """
    chat_type = (metadata or {}).get("chat_type")
    if chat_type:
        return chat_type
    return "group" if chat_id.startswith("oc_") else "p2p"


class FeishuChannel(BaseChannel):
    """
    One Feishu/Lark bot account using a WebSocket long connection.

    On start the bot's identity is probed and registered so other bots in this
    process can address it; on stop it is unregistered.  Every successful
    outbound send is also offered to the mention forwarder, since the platform
    never delivers one bot's messages to another.

    Requires:
    - App ID and App Secret from Feishu Open Platform
    - Bot capability enabled
    - Event subscription enabled (im.message.receive_v1)
    """

    name = "feishu"

    def __init__(
        self,
        account_id: str,
        account: FeishuAccountConfig,
        config: "Config",
        registry: IdentityRegistry,
        pipeline: ReplyDispatcher,
        forwarder: MentionForwarder | None = None,
    ):
        super().__init__(
            account_id,
            config,
            pipeline,
            router=build_inbound_router(
                registry,
                allow_from=account.allow_from,
                group_policy=account.group_policy,
            ),
        )
        self.account = account
        self.registry = registry
        self.forwarder = forwarder
        self._client: Any = None
        self._ws_client: Any = None
        self._ws_thread: threading.Thread | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._started_at_ms: float = 0  # Start time (ms), used to ignore replayed historical events

    async def start(self) -> None:
        """Start the Feishu bot with WebSocket long connection."""
        if not self.account.configured:
            logger.error(f"{self.log_prefix}: app_id and app_secret not configured")
            return

        self._running = True
        self._loop = asyncio.get_running_loop()

        self._client = lark.Client.builder() \
            .app_id(self.account.app_id) \
            .app_secret(self.account.app_secret) \
            .log_level(lark.LogLevel.INFO) \
            .build()

        await self.register_identity()

        # Only register message receive, ignore other events
        event_handler = lark.EventDispatcherHandler.builder(
            self.account.encrypt_key or "",
            self.account.verification_token or "",
        ).register_p2_im_message_receive_v1(
            self._on_message_sync
        ).build()

        self._ws_client = lark.ws.Client(
            self.account.app_id,
            self.account.app_secret,
            event_handler=event_handler,
            log_level=lark.LogLevel.INFO,
        )

        def run_ws():
            try:
                self._ws_client.start()
            except Exception as e:
                logger.error(f"{self.log_prefix}: WebSocket error: {e}")

        self._ws_thread = threading.Thread(target=run_ws, daemon=True)
        self._ws_thread.start()

        # Feishu may push old messages on connect
        self._started_at_ms = time.time() * 1000

        logger.info(f"{self.log_prefix}: WebSocket client started")

        while self._running:
            await asyncio.sleep(1)

    async def register_identity(self) -> None:
        """Probe this bot's identifiers and add them to the shared registry."""
        identity = await probe_bot_identity(self.account.app_id, self.account.app_secret)
        if identity is None:
            logger.warning(
                f"{self.log_prefix}: could not fetch bot identity; "
                "self-skip and markup mention detection disabled"
            )
            identity = BotIdentity()
        self.registry.register(
            self.account_id,
            identity.open_id,
            identity.alternates,
            display_name=self.account.name or identity.bot_name,
            enabled=self.account.enabled,
        )
        logger.info(f"{self.log_prefix}: bot open_id resolved: {identity.open_id or 'unknown'}")

    async def stop(self) -> None:
        """Stop the Feishu bot."""
        self._running = False
        self.registry.unregister(self.account_id)
        if self._ws_client:
            try:
                self._ws_client.stop()
            except Exception as e:
                logger.warning(f"{self.log_prefix}: error stopping WebSocket client: {e}")
        logger.info(f"{self.log_prefix}: stopped")

    # ------------------------------------------------------------------
    # Outbound
    # ------------------------------------------------------------------

    def _resolve_outbound_mentions(self, text: str) -> str:
        """
        Convert @Name patterns for other registered bots to Feishu's
        interactive card @mention syntax: ``<at id=ou_xxx></at>``.
        """
        for bot in self.registry.accounts():
            if bot.account_id == self.account_id or not bot.display_name:
                continue
            ids = bot.identifiers
            if not ids:
                continue
            target = MentionTarget(open_id=ids[0], name=bot.display_name, key=f"@{bot.display_name}")
            markup = format_mention_for_card(target)
            text = name_pattern(bot.display_name).sub(lambda _m: markup, text)
        return text

    def _build_card(self, content: str) -> str:
        card = {
            "config": {"wide_screen_mode": True},
            "elements": [{"tag": "markdown", "content": content}],
        }
        return json.dumps(card, ensure_ascii=False)

    def _create_message_sync(self, chat_id: str, content: str) -> bool:
        """Sync helper for sending a card (runs in thread pool)."""
        # open_id starts with "ou_", chat_id starts with "oc_"
        receive_id_type = "chat_id" if chat_id.startswith("oc_") else "open_id"
        request = CreateMessageRequest.builder() \
            .receive_id_type(receive_id_type) \
            .request_body(
                CreateMessageRequestBody.builder()
                .receive_id(chat_id)
                .msg_type("interactive")
                .content(content)
                .build()
            ).build()

        response = self._client.im.v1.message.create(request)
        if not response.success():
            logger.error(
                f"{self.log_prefix}: failed to send message: code={response.code}, "
                f"msg={response.msg}, log_id={response.get_log_id()}"
            )
            return False
        return True

    async def send(self, msg: OutboundMessage) -> None:
        """Send a message through Feishu, then forward it to any bots it mentions."""
        if not self._client:
            logger.warning(f"{self.log_prefix}: client not initialized")
            return

        try:
            card = self._build_card(self._resolve_outbound_mentions(msg.content))
            loop = asyncio.get_running_loop()
            sent = await loop.run_in_executor(
                None, self._create_message_sync, msg.chat_id, card
            )
        except Exception as e:
            logger.error(f"{self.log_prefix}: error sending message: {e}")
            return

        if not sent:
            return
        logger.debug(f"{self.log_prefix}: message sent to {msg.chat_id}")

        if self.forwarder is not None:
            self.forwarder.schedule(
                self.root_config,
                msg.content,
                msg.chat_id,
                detect_chat_type(msg.chat_id, msg.metadata),
                self.account_id,
            )

    def _add_reaction_sync(self, message_id: str, emoji_type: str) -> None:
        """Sync helper for adding reaction (runs in thread pool)."""
        try:
            request = CreateMessageReactionRequest.builder() \
                .message_id(message_id) \
                .request_body(
                    CreateMessageReactionRequestBody.builder()
                    .reaction_type(Emoji.builder().emoji_type(emoji_type).build())
                    .build()
                ).build()

            response = self._client.im.v1.message_reaction.create(request)

            if not response.success():
                logger.warning(f"Failed to add reaction: code={response.code}, msg={response.msg}")
            else:
                logger.debug(f"Added {emoji_type} reaction to message {message_id}")
        except Exception as e:
            logger.warning(f"Error adding reaction: {e}")

    async def _on_accepted(self, msg: InboundMessage) -> None:
        # Indicate "seen" only for messages we will process
        if msg.message_id:
            await self._add_reaction(msg.message_id, "THUMBSUP")

    async def _add_reaction(self, message_id: str, emoji_type: str = "THUMBSUP") -> None:
        """Add a reaction emoji to a message (non-blocking)."""
        if not self._client:
            return
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self._add_reaction_sync, message_id, emoji_type)

    # ------------------------------------------------------------------
    # Inbound
    # ------------------------------------------------------------------

    def _on_message_sync(self, data: P2ImMessageReceiveV1) -> None:
        """
        Sync handler for incoming messages (called from WebSocket thread).
        Schedules async handling in the main event loop.
        """
        if self._loop and self._loop.is_running():
            asyncio.run_coroutine_threadsafe(self._on_message(data), self._loop)

    # Regex to strip @mention placeholders like @_user_1 from text
    _MENTION_PLACEHOLDER_RE = re.compile(r"@_user_\d+")

    def _is_replayed(self, message: Any, event: Any) -> bool:
        create_time = getattr(message, "create_time", None) or getattr(event, "create_time", None)
        if create_time is None or self._started_at_ms <= 0:
            return False
        try:
            msg_ts = int(create_time)
        except (ValueError, TypeError):
            return False
        # Allow 60s buffer for clock skew
        return msg_ts < self._started_at_ms - 60_000

    async def _on_message(self, data: P2ImMessageReceiveV1) -> None:
        """Handle an incoming platform message for this account."""
        try:
            event = data.event
            message = event.message
            sender = event.sender

            message_id = message.message_id
            sender_id = sender.sender_id.open_id if sender.sender_id else "unknown"

            if self._is_replayed(message, event):
                logger.debug(f"{self.log_prefix}: skipping replayed historical message {message_id}")
                return

            chat_id = message.chat_id
            chat_type = message.chat_type  # "p2p" or "group"
            msg_type = message.message_type

            # ----------------------------------------------------------
            # Parse @mentions
            # ----------------------------------------------------------
            own_ids = set(self.registry.list_identifiers(self.account_id))
            targets = extract_mention_targets(getattr(message, "mentions", None))
            mentioned_ids = {t.open_id for t in targets}
            is_mentioned = bool(own_ids & mentioned_ids)

            # ----------------------------------------------------------
            # Parse message content
            # ----------------------------------------------------------
            if msg_type == "text":
                try:
                    content = json.loads(message.content).get("text", "")
                except json.JSONDecodeError:
                    content = message.content or ""
            else:
                content = MSG_TYPE_MAP.get(msg_type, f"[{msg_type}]")

            for t in targets:
                if t.key and t.name:
                    content = content.replace(t.key, f"@{t.name}")
            content = extract_message_body(content, self._MENTION_PLACEHOLDER_RE.findall(content))
            if not content:
                return

            reply_to = chat_id if chat_type == "group" else sender_id
            metadata: dict[str, Any] = {
                "chat_type": chat_type,
                "msg_type": msg_type,
                "is_mentioned": is_mentioned,
                "group_policy": self.account.group_policy,
                "mentioned_ids": sorted(mentioned_ids),
            }

            await self._handle_message(
                sender_id=sender_id,
                chat_id=reply_to,
                content=content,
                message_id=message_id,
                metadata=metadata,
            )

        except Exception as e:
            logger.error(f"{self.log_prefix}: error processing message: {e}")
