"""帧解码器：把原始字节块还原为一行一行的文本。

网络读取的块边界是任意的，可能把一个多字节字符或一行文本切成两半。
这里使用增量 UTF-8 解码器，跨调用缓存不完整的字节序列，
再用一个“未完成行”缓冲区拼接跨块的行。
"""

import codecs
from typing import AsyncIterable, AsyncIterator, List


class FrameDecoder:
    """增量行解码器。

    - feed(chunk): 解码一个字节块，返回其中所有完整的行（已去掉行结束符）。
    - flush(): 流结束时调用，冲刷解码器并返回剩余的未完成行（如果非空）。
    """

    def __init__(self, encoding: str = "utf-8"):
        self._decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
        self._pending = ""

    def feed(self, chunk: bytes) -> List[str]:
        if not chunk:
            return []
        return self._split(self._decoder.decode(chunk))

    def flush(self) -> List[str]:
        lines = self._split(self._decoder.decode(b"", final=True))
        if self._pending:
            pending = self._pending
            lines.append(pending[:-1] if pending.endswith("\r") else pending)
            self._pending = ""
        return lines

    def _split(self, text: str) -> List[str]:
        if not text:
            return []
        parts = (self._pending + text).split("\n")
        # 最后一段没有行结束符，留作下一次的未完成行
        self._pending = parts.pop()
        return [p[:-1] if p.endswith("\r") else p for p in parts]


async def iter_lines(chunks: AsyncIterable[bytes]) -> AsyncIterator[str]:
    """按到达顺序把字节块流转换为文本行流。"""

    decoder = FrameDecoder()
    async for chunk in chunks:
        for line in decoder.feed(chunk):
            yield line
    for line in decoder.flush():
        yield line
