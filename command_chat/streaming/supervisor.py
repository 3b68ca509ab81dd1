"""流监督者：负责一次逻辑请求/流的完整生命周期。

状态机：Idle → Requesting → Streaming → {Completed | GracefullyErrored | TransportFailed | Cancelled}

- 开始前通过 StreamHandle.supersede() 取消同一会话的旧流。
- 请求失败（非 2xx、网络错误）直接抛出，调用方拿不到任何片段。
- 读取过程中每次只拉取一个字节块，交给 解码器 → 记录解析 → 内容组装 流水线。
- 取消令牌触发时放弃正在进行的读取并静默结束，不会向外抛出。
- 所有退出路径上 ByteReader 都恰好释放一次。
"""

import asyncio
import time
from contextlib import aclosing
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, Optional, Sequence, TypeVar

from command_chat.domain.exceptions import StreamConsumedError, StreamInterruptedError
from command_chat.domain.models import ChatMessage, StreamRequest, StreamState, validate_messages
from command_chat.infrastructure.logging.logger import logger
from command_chat.providers.base import ByteReader, ChatTransport
from command_chat.streaming.assembler import ContentAssembler
from command_chat.streaming.cancellation import CancellationToken, StreamHandle
from command_chat.streaming.decoder import iter_lines

T = TypeVar("T")


class _StreamCancelled(Exception):
    """内部信号：令牌已触发，沿流水线展开到 Supervisor。"""


async def _until_cancelled(factory: Callable[[], Awaitable[T]], token: CancellationToken) -> T:
    """等待 factory() 完成，令牌先触发时取消该等待并抛出 _StreamCancelled。"""

    if token.cancelled:
        raise _StreamCancelled()

    async def _run() -> T:
        return await factory()

    task = asyncio.ensure_future(_run())
    waiter = asyncio.ensure_future(token.wait())
    try:
        await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        waiter.cancel()
        if not task.done():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
    if task.cancelled():
        raise _StreamCancelled()
    return task.result()


async def _next_chunk(chunks: AsyncIterator[bytes]) -> Optional[bytes]:
    try:
        return await chunks.__anext__()
    except StopAsyncIteration:
        return None


class StreamSupervisor:
    """编排一次流式请求。

    每个实例只能 stream() 一次；新的逻辑流需要新的 Supervisor。
    handle 由会话对象持有并按引用传入，以保证同一会话最多一个活动流。
    """

    def __init__(self, transport: ChatTransport, handle: Optional[StreamHandle] = None):
        self._transport = transport
        self._handle = handle or StreamHandle()
        self._consumed = False
        self.state = StreamState.IDLE
        self.token: Optional[CancellationToken] = None

    def cancel(self) -> None:
        if self.token is not None:
            self.token.cancel()

    async def stream(
        self,
        messages: Sequence[ChatMessage],
        context: Optional[Dict[str, Any]] = None,
    ) -> AsyncIterator[str]:
        if self._consumed:
            raise StreamConsumedError(code="STREAM_CONSUMED", message="Stream already started")
        self._consumed = True
        validate_messages(messages)

        token = self._handle.supersede()
        self.token = token
        request = StreamRequest.create(messages, token, context)
        assembler = ContentAssembler()
        reader: Optional[ByteReader] = None
        started = time.monotonic()
        log_ctx: Dict[str, Any] = {
            "token": token.id,
            "messages": len(request.messages),
            "page": (request.context or {}).get("page"),
        }
        logger.info("Chat stream requested", extra={"extra": log_ctx})

        self.state = StreamState.REQUESTING
        try:
            reader = await _until_cancelled(lambda: self._transport.open_stream(request), token)
            self.state = StreamState.STREAMING
            lines = iter_lines(self._chunks(reader, token))
            async with aclosing(assembler.fragments(lines)) as fragments:
                async for fragment in fragments:
                    if token.cancelled:
                        raise _StreamCancelled()
                    yield fragment
                    if token.cancelled:
                        raise _StreamCancelled()
            self.state = assembler.outcome or StreamState.COMPLETED
        except _StreamCancelled:
            self.state = StreamState.CANCELLED
        except (GeneratorExit, asyncio.CancelledError):
            # 调用方提前关闭生成器或取消了所在任务
            self.state = StreamState.CANCELLED
            raise
        except Exception:
            if token.cancelled:
                self.state = StreamState.CANCELLED
            else:
                self.state = StreamState.TRANSPORT_FAILED
                raise
        finally:
            if reader is not None:
                await reader.release()
            self._handle.release(token)
            logger.info(
                "Chat stream finished",
                extra={"extra": {
                    **log_ctx,
                    "state": self.state.value,
                    "fragments": assembler.fragment_count,
                    "malformed": assembler.malformed_count,
                    "duration_ms": int((time.monotonic() - started) * 1000),
                }},
            )

    async def _chunks(self, reader: ByteReader, token: CancellationToken) -> AsyncIterator[bytes]:
        """逐块拉取响应体；任何读取失败都包装为 StreamInterruptedError。"""

        chunks = reader.aiter_bytes()
        while True:
            try:
                chunk = await _until_cancelled(lambda: _next_chunk(chunks), token)
            except _StreamCancelled:
                raise
            except Exception as e:
                raise StreamInterruptedError(
                    code="STREAM_INTERRUPTED",
                    message=f"Connection to AI service lost. {str(e) or type(e).__name__}",
                    http_status=502,
                ) from e
            if chunk is None:
                return
            yield chunk
