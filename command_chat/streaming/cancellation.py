"""协作式取消令牌与会话级流句柄。

同一个会话任意时刻最多只有一个活动流。StreamHandle 由代表会话的对象持有，
按引用传给 StreamSupervisor；新流开始前 supersede() 会先取消旧流的令牌。
"""

import asyncio
from itertools import count
from typing import Optional

_ids = count(1)


class CancellationToken:
    """基于 asyncio.Event 的取消信号。"""

    def __init__(self):
        self.id = next(_ids)
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    async def wait(self) -> None:
        await self._event.wait()

    def __repr__(self) -> str:
        return f"CancellationToken(id={self.id}, cancelled={self.cancelled})"


class StreamHandle:
    """一个逻辑会话的“当前流”句柄。"""

    def __init__(self):
        self._active: Optional[CancellationToken] = None

    @property
    def active(self) -> Optional[CancellationToken]:
        return self._active

    def supersede(self) -> CancellationToken:
        """取消当前活动流（如有），并签发新令牌。"""

        if self._active is not None:
            self._active.cancel()
        self._active = CancellationToken()
        return self._active

    def cancel(self) -> None:
        if self._active is not None:
            self._active.cancel()

    def release(self, token: CancellationToken) -> None:
        """流结束时归还令牌；令牌已被新流替换时不做处理。"""

        if self._active is token:
            self._active = None
