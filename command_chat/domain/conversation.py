from typing import Any, AsyncIterator, Dict, List, Optional

from command_chat.config.settings import settings
from command_chat.domain.exceptions import BusinessError
from command_chat.domain.models import ChatMessage
from command_chat.infrastructure.logging.logger import logger
from command_chat.providers.base import ChatTransport
from command_chat.streaming.cancellation import StreamHandle
from command_chat.streaming.supervisor import StreamSupervisor


class ChatConversation:
    """一个逻辑会话：持有消息列表和该会话唯一的 StreamHandle。

    send() 追加用户消息和一条空的助手消息，随后用累积内容原地替换这条助手消息。
    传输失败时助手消息被替换为错误提示；取消时保留已收到的部分内容。
    """

    def __init__(self, transport: ChatTransport, max_context_messages: Optional[int] = None):
        self._transport = transport
        self._max_context = max_context_messages or settings.max_context_messages
        self.handle = StreamHandle()
        self.messages: List[ChatMessage] = []

    @property
    def streaming(self) -> bool:
        return self.handle.active is not None

    def stop(self) -> None:
        self.handle.cancel()

    def clear(self) -> None:
        self.stop()
        self.messages = []

    async def send(self, content: str, context: Optional[Dict[str, Any]] = None) -> AsyncIterator[str]:
        text = (content or "").strip()
        if not text:
            return
        history = [*self.messages, ChatMessage(role="user", content=text)]
        self.messages = [*history, ChatMessage(role="assistant", content="")]
        index = len(self.messages) - 1

        supervisor = StreamSupervisor(self._transport, self.handle)
        accumulated = ""
        try:
            async for fragment in supervisor.stream(history[-self._max_context:], context):
                accumulated += fragment
                self._replace(index, accumulated)
                yield fragment
        except BusinessError as e:
            logger.error(
                f"Chat failed: {e.message}",
                extra={"extra": {"code": e.code, "http_status": e.http_status}},
            )
            self._replace(index, f"Error: {e.message or 'Failed to get response'}")
        except Exception as e:
            logger.error(f"Chat failed unexpectedly: {e}", extra={"extra": {"type": type(e).__name__}})
            self._replace(index, f"Error: {str(e) or 'Failed to get response'}")
            raise

    def _replace(self, index: int, content: str) -> None:
        updated = list(self.messages)
        updated[index] = ChatMessage(role="assistant", content=content)
        self.messages = updated
