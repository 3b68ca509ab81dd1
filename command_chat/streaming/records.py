"""SSE 记录解析。

只关心 `data: ` 行：

- 其他行（注释、心跳空行、event/id 字段）直接忽略。
- `[DONE]` 表示正常结束。
- 其余内容按 JSON 解析；解析失败只记日志并跳过，单条坏记录不会中断整条流。
- 带 `error` 的记录转换为一条错误提示片段，并结束解析（优雅终止）。
- `choices[0].delta.content` 非空时产出该增量。
"""

import json
from typing import Any, Optional

from command_chat.domain.models import RecordKind, SseRecord
from command_chat.infrastructure.logging.logger import logger


DATA_PREFIX = "data: "
DONE_SENTINEL = "[DONE]"
DEFAULT_ERROR_MESSAGE = "AI service error"

_IGNORED = SseRecord(kind=RecordKind.IGNORED)
_DONE = SseRecord(kind=RecordKind.DONE)


def format_error_notice(message: str) -> str:
    return f"\n\n[Error: {message}]"


def parse_line(line: str) -> SseRecord:
    """把一行解码后的文本分类为 SseRecord。"""

    if not line.startswith(DATA_PREFIX):
        return _IGNORED
    data = line[len(DATA_PREFIX):]
    if data == DONE_SENTINEL:
        return _DONE
    try:
        parsed = json.loads(data)
    except json.JSONDecodeError:
        logger.warning(
            "Malformed SSE record skipped",
            extra={"extra": {"payload": data[:200]}},
        )
        return SseRecord(kind=RecordKind.MALFORMED)
    return classify_payload(parsed)


def classify_payload(parsed: Any) -> SseRecord:
    """对已经解析成功的 JSON 负载进行分类。"""

    if not isinstance(parsed, dict):
        return SseRecord(kind=RecordKind.EMPTY)
    error = parsed.get("error")
    if error:
        message = _error_message(error)
        logger.error(
            "Gateway error in stream",
            extra={"extra": {"error": error if isinstance(error, (dict, str)) else repr(error)}},
        )
        return SseRecord(kind=RecordKind.ERROR, text=format_error_notice(message))
    content = _delta_content(parsed)
    if content:
        return SseRecord(kind=RecordKind.CONTENT, text=content)
    return SseRecord(kind=RecordKind.EMPTY)


def _error_message(error: Any) -> str:
    if isinstance(error, dict):
        message = error.get("message")
        if isinstance(message, str) and message:
            return message
    return DEFAULT_ERROR_MESSAGE


def _delta_content(parsed: dict) -> Optional[str]:
    choices = parsed.get("choices")
    if not isinstance(choices, list) or not choices:
        return None
    first = choices[0]
    if not isinstance(first, dict):
        return None
    delta = first.get("delta")
    if not isinstance(delta, dict):
        return None
    content = delta.get("content")
    return content if isinstance(content, str) else None
