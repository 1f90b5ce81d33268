"""
chatrelay - 聊天渠道与补全服务之间的消息中继

在 Telegram 与 OpenAI 兼容补全服务之间转发消息，
并为每个会话维护进程内的短期历史。
"""

__version__ = "1.0.0"
