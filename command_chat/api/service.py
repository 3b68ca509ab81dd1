"""对外 API 服务模块。

提供简化的函数接口供 UI 层调用。
"""

from typing import Any, AsyncIterator, Dict, Optional, Sequence

from command_chat.domain.conversation import ChatConversation
from command_chat.domain.models import ChatMessage
from command_chat.providers.base import ChatTransport
from command_chat.providers import create_transport
from command_chat.streaming.cancellation import StreamHandle
from command_chat.streaming.supervisor import StreamSupervisor


_transport: Optional[ChatTransport] = None


def get_default_transport() -> ChatTransport:
    """获取默认的传输客户端（单例）。"""
    global _transport
    if _transport is None:
        _transport = create_transport()
    return _transport


def chat_stream(
    messages: Sequence[ChatMessage],
    context: Optional[Dict[str, Any]] = None,
    handle: Optional[StreamHandle] = None,
    *,
    transport: Optional[ChatTransport] = None,
) -> AsyncIterator[str]:
    """发起一次流式对话，返回惰性、只能迭代一次的片段序列。

    Args:
        messages: 完整的对话历史
        context: 可选上下文（如 {"page": "/bills", "item_id": "..."}）
        handle: 会话级流句柄；同一句柄上新的流会先取消旧流
        transport: 传输客户端（可选，默认使用配置创建）

    Raises:
        各种 domain.exceptions 中定义的传输异常；取消不会抛出
    """
    supervisor = StreamSupervisor(transport or get_default_transport(), handle)
    return supervisor.stream(messages, context)


def new_conversation(transport: Optional[ChatTransport] = None) -> ChatConversation:
    """创建一个新的会话对象，消息只保存在当前进程内。"""
    return ChatConversation(transport or get_default_transport())
