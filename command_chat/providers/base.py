"""传输层协议。

StreamSupervisor 不直接依赖 httpx，而是依赖这里的两个协议：

- TokenProvider: 提供 Bearer token，并在 401 时负责登出（跳转重新登录）。
- ChatTransport: 发起 POST /chat，返回独占的 ByteReader。

这样可以在测试中替换任意一层，而不改 Supervisor 代码。
"""

from typing import AsyncIterator, Optional, Protocol

from command_chat.domain.models import StreamRequest


class TokenProvider(Protocol):
    def get_token(self) -> Optional[str]:
        ...

    def logout(self) -> None:
        ...


class ByteReader(Protocol):
    """响应体读取器，由当前活动的 Supervisor 独占。"""

    def aiter_bytes(self) -> AsyncIterator[bytes]:
        ...

    async def release(self) -> None:
        """释放底层连接，必须恰好调用一次。"""

        ...


class ChatTransport(Protocol):
    name: str

    async def open_stream(self, req: StreamRequest) -> ByteReader:
        ...
