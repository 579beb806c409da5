"""
botbridge - bot-to-bot @mention forwarding for multi-bot group chats
"""

__version__ = "0.1.0"
