"""HTTP 传输层。

该包下的模块负责：
- 定义传输与 token 提供者协议 (base)。
- 提供 /chat 接口的 httpx 实现 (chat_client)。
"""

from typing import Optional

from command_chat.config.settings import settings
from command_chat.providers.base import ChatTransport, TokenProvider
from command_chat.providers.chat_client import ChatStreamClient


def create_transport(token_provider: Optional[TokenProvider] = None) -> ChatTransport:
    """根据配置创建传输客户端。"""

    return ChatStreamClient(settings, token_provider=token_provider)
