"""Chat channels."""

from botbridge.channels.base import BaseChannel
from botbridge.channels.feishu import FeishuChannel
from botbridge.channels.manager import ChannelManager

__all__ = ["BaseChannel", "FeishuChannel", "ChannelManager"]
