"""Command Chat 顶层包。

该包提供财务看板聊天侧边栏的流式客户端，
包括配置加载、领域模型、HTTP 传输、SSE 解码流水线、
流生命周期监督与会话对象等能力。
"""

from command_chat.api.service import chat_stream, new_conversation
from command_chat.domain.conversation import ChatConversation
from command_chat.domain.models import ChatMessage, build_context
from command_chat.prompts import quick_prompts
from command_chat.streaming.cancellation import StreamHandle

__all__ = [
    "ChatConversation",
    "ChatMessage",
    "StreamHandle",
    "build_context",
    "chat_stream",
    "new_conversation",
    "quick_prompts",
]
