"""流式对话的数据模型。

本模块定义了聊天流各组件之间共享的标准数据结构：

- ChatMessage: 一条对话消息（只有 user/assistant 两种角色）。
- StreamRequest: 一次流式请求，生命周期内由 StreamSupervisor 独占。
- SseRecord: 一行 SSE 文本的分类结果，瞬时对象，从不持久化。
- StreamState: Supervisor 的状态机。

片段（Fragment）就是普通的非空 str，产出后所有权立即交给调用方。
"""

import enum
from dataclasses import dataclass
from typing import Any, Dict, Literal, Optional, Sequence, Tuple, TYPE_CHECKING

from command_chat.domain.exceptions import ValidationError

if TYPE_CHECKING:
    # 仅在类型检查时导入，避免运行时循环依赖
    from command_chat.streaming.cancellation import CancellationToken


# 对话角色，与后端 /chat 接口的 role 字段对应
Role = Literal["user", "assistant"]

ROLES = ("user", "assistant")


@dataclass(frozen=True)
class ChatMessage:
    """一条对话消息。

    消息发送后不可变；助手消息在流式过程中通过“替换列表最后一个元素”
    的方式增长，而不是逐片段追加新消息。
    """

    role: Role
    content: str

    def __post_init__(self):
        if self.role not in ROLES:
            raise ValidationError(code="VALIDATION_ERROR", message=f"Unknown role: {self.role!r}")

    def to_payload(self) -> Dict[str, str]:
        return {"role": self.role, "content": self.content}


def build_context(page: Optional[str] = None, item_id: Optional[str] = None, **extra: Any) -> Dict[str, Any]:
    """构造随请求发送的上下文元数据（当前页面、当前条目等）。

    值为 None 的字段不会出现在结果中。
    """

    ctx: Dict[str, Any] = {"page": page, "item_id": item_id, **extra}
    return {k: v for k, v in ctx.items() if v is not None}


def validate_messages(messages: Sequence[ChatMessage]) -> None:
    if not messages:
        raise ValidationError(code="VALIDATION_ERROR", message="messages must not be empty")
    for m in messages:
        if not isinstance(m, ChatMessage):
            raise ValidationError(code="VALIDATION_ERROR", message=f"Not a ChatMessage: {m!r}")


@dataclass
class StreamRequest:
    """一次完整的流式请求。

    - messages: 完整的历史消息（按顺序）。
    - context: 可选的自由格式上下文，例如当前 UI 页面。
    - token: 本次请求的取消令牌，由 StreamHandle 签发。
    """

    messages: Tuple[ChatMessage, ...]
    token: "CancellationToken"
    context: Optional[Dict[str, Any]] = None

    @classmethod
    def create(
        cls,
        messages: Sequence[ChatMessage],
        token: "CancellationToken",
        context: Optional[Dict[str, Any]] = None,
    ) -> "StreamRequest":
        validate_messages(messages)
        return cls(messages=tuple(messages), token=token, context=dict(context) if context else None)

    def to_payload(self) -> Dict[str, Any]:
        """转换为 POST /chat 的 JSON 请求体。"""

        payload: Dict[str, Any] = {"messages": [m.to_payload() for m in self.messages]}
        if self.context:
            payload["context"] = self.context
        return payload


class RecordKind(str, enum.Enum):
    IGNORED = "ignored"  # 非 data: 行（注释、心跳空行、event/id 等字段）
    MALFORMED = "malformed"  # data: 行但 JSON 解析失败
    DONE = "done"  # [DONE] 结束标记
    ERROR = "error"  # 带内错误
    CONTENT = "content"  # 非空增量
    EMPTY = "empty"  # 合法 JSON 但没有可用增量


@dataclass(frozen=True)
class SseRecord:
    """一行 SSE 文本的分类结果。

    kind 为 CONTENT 或 ERROR 时 text 为要交给调用方的片段，其余情况为 None。
    """

    kind: RecordKind
    text: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.kind in (RecordKind.DONE, RecordKind.ERROR)


class StreamState(str, enum.Enum):
    """Supervisor 生命周期：Idle → Requesting → Streaming → 终态。"""

    IDLE = "idle"
    REQUESTING = "requesting"
    STREAMING = "streaming"
    COMPLETED = "completed"
    GRACEFULLY_ERRORED = "gracefully_errored"
    TRANSPORT_FAILED = "transport_failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATES


TERMINAL_STATES = frozenset(
    {
        StreamState.COMPLETED,
        StreamState.GRACEFULLY_ERRORED,
        StreamState.TRANSPORT_FAILED,
        StreamState.CANCELLED,
    }
)
