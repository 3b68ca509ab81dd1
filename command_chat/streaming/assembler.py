"""内容组装器：把分类后的记录按到达顺序转交给调用方。"""

from typing import AsyncIterable, AsyncIterator, Optional

from command_chat.domain.models import RecordKind, StreamState
from command_chat.streaming.records import parse_line


class ContentAssembler:
    """纯转发阶段，不保存片段历史。

    fragments() 只能迭代一次；结束后 outcome 为 COMPLETED 或 GRACEFULLY_ERRORED。
    响应体在没有 [DONE] 的情况下读完也视为 COMPLETED。
    """

    def __init__(self):
        self.outcome: Optional[StreamState] = None
        self.fragment_count = 0
        self.malformed_count = 0

    async def fragments(self, lines: AsyncIterable[str]) -> AsyncIterator[str]:
        async for line in lines:
            record = parse_line(line)
            if record.kind is RecordKind.DONE:
                self.outcome = StreamState.COMPLETED
                return
            if record.kind is RecordKind.MALFORMED:
                self.malformed_count += 1
                continue
            if record.text:
                self.fragment_count += 1
                yield record.text
            if record.kind is RecordKind.ERROR:
                self.outcome = StreamState.GRACEFULLY_ERRORED
                return
        self.outcome = StreamState.COMPLETED
