"""Shared fixtures."""

from unittest.mock import AsyncMock

import pytest
from loguru import logger

from botbridge.agent.pipeline import DispatchSummary
from botbridge.config.schema import Config
from botbridge.forwarding.registry import IdentityRegistry


@pytest.fixture
def log_messages():
    """Capture loguru messages (all levels) for the duration of a test."""
    messages: list[str] = []
    handler_id = logger.add(lambda m: messages.append(m.record["message"]), level="TRACE")
    yield messages
    logger.remove(handler_id)


@pytest.fixture
def registry() -> IdentityRegistry:
    """Manager and Reviewer bots, as in a typical two-bot group."""
    reg = IdentityRegistry()
    reg.register("manager", "ou_m", ["on_m"], display_name="Manager")
    reg.register("reviewer", "ou_r", ["on_r", "u_r"], display_name="Reviewer")
    return reg


@pytest.fixture
def config() -> Config:
    return Config.model_validate({
        "agents": {"default": "main", "list": [{"id": "manager"}, {"id": "reviewer"}]},
        "bindings": [
            {"agent_id": "manager", "match": {"channel": "feishu", "account_id": "manager"}},
            {"agent_id": "reviewer", "match": {"channel": "feishu", "account_id": "reviewer"}},
        ],
        "channels": {
            "feishu": {
                "accounts": {
                    "manager": {"app_id": "cli_m", "app_secret": "s_m", "name": "Manager"},
                    "reviewer": {"app_id": "cli_r", "app_secret": "s_r", "name": "Reviewer"},
                }
            }
        },
    })


@pytest.fixture
def pipeline() -> AsyncMock:
    """Reply pipeline stand-in that records envelopes."""
    mock = AsyncMock()
    mock.dispatch.return_value = DispatchSummary(queued=1, sent=1)
    return mock
