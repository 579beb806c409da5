"""End-to-end forwarding through ChannelManager with mocked platform clients."""

import json
from unittest.mock import MagicMock

import pytest

from botbridge.bus.events import OutboundMessage
from botbridge.channels.manager import ChannelManager
from botbridge.config.schema import Config


def _fake_client() -> MagicMock:
    client = MagicMock()
    client.im.v1.message.create.return_value.success.return_value = True
    return client


def _sent(client: MagicMock) -> list[str]:
    return [
        json.loads(call.args[0].request_body.content)["elements"][0]["content"]
        for call in client.im.v1.message.create.call_args_list
    ]


@pytest.fixture
def manager(config):
    mgr = ChannelManager(config)
    mgr.registry.register("manager", "ou_m", [], display_name="Manager")
    mgr.registry.register("reviewer", "ou_r", [], display_name="Reviewer")
    for channel in mgr.channels.values():
        channel._client = _fake_client()
    return mgr


def test_one_channel_per_enabled_account(config):
    config.channels.feishu.accounts["reviewer"].enabled = False
    mgr = ChannelManager(config)
    assert list(mgr.channels) == ["manager"]
    assert mgr.guard.max_depth == 1


@pytest.mark.asyncio
async def test_mention_reaches_other_bot_and_reply_is_not_bounced(manager):
    seen = []

    async def reviewer_agent(msg):
        seen.append(msg)
        return "@Manager done"

    async def manager_agent(msg):
        seen.append(msg)
        return "ok"

    manager.register_agent("reviewer", reviewer_agent)
    manager.register_agent("manager", manager_agent)

    await manager.send(OutboundMessage(
        channel="feishu", chat_id="oc_g1", content="@Reviewer please check this",
        account_id="manager",
    ))
    await manager.forwarder.drain()

    # Reviewer received exactly one attributed envelope; Manager got nothing back
    assert len(seen) == 1
    assert seen[0].account_id == "reviewer"
    assert seen[0].content == "Manager: @Reviewer please check this"
    assert seen[0].session_key == "agent:reviewer:feishu:group:oc_g1"

    # Reviewer's reply went out from the reviewer bot, with its mention converted
    reviewer_client = manager.channels["reviewer"]._client
    assert _sent(reviewer_client) == ["<at id=ou_m></at> done"]

    assert manager.guard.active() == {}


@pytest.mark.asyncio
async def test_direct_chat_send_is_not_forwarded(manager):
    calls = []

    async def reviewer_agent(msg):
        calls.append(msg)

    manager.register_agent("reviewer", reviewer_agent)

    await manager.send(OutboundMessage(
        channel="feishu", chat_id="ou_someone", content="@Reviewer hi", account_id="manager",
    ))
    await manager.forwarder.drain()

    assert calls == []


@pytest.mark.asyncio
async def test_unknown_target_agent_is_logged(manager, log_messages):
    # No agents registered: dispatch fails for reviewer but send still succeeds
    await manager.send(OutboundMessage(
        channel="feishu", chat_id="oc_g1", content="@Reviewer hi", account_id="manager",
    ))
    await manager.forwarder.drain()

    assert _sent(manager.channels["manager"]._client) == ["<at id=ou_r></at> hi"]
    assert any("error forwarding message to reviewer" in m for m in log_messages)
    assert manager.guard.active() == {}


@pytest.mark.asyncio
async def test_send_for_unknown_account(manager, log_messages):
    await manager.send(OutboundMessage(channel="feishu", chat_id="oc_g1", content="hi", account_id="ghost"))
    assert any("Unknown account 'ghost'" in m for m in log_messages)


@pytest.mark.asyncio
async def test_stop_all_resets_shared_state(manager):
    await manager.stop_all()

    assert len(manager.registry) == 0
    assert manager.guard.active() == {}
    assert all(not ch.is_running for ch in manager.channels.values())


@pytest.mark.asyncio
async def test_start_all_without_accounts(log_messages):
    mgr = ChannelManager(Config())
    await mgr.start_all()
    assert any("No enabled Feishu accounts" in m for m in log_messages)
