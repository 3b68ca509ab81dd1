"""后端 /chat 接口的 HTTP 适配器。

本模块负责：

1. 接收 StreamRequest，转换为 POST {api_base}/chat 的 JSON 请求。
2. 附带 Bearer token；401 时调用 TokenProvider.logout() 并抛出 SessionExpiredError。
3. 非 2xx 状态码包装为 ApiError，网络错误包装为 NetworkError。
4. 成功时返回 ResponseReader，把响应体的所有权交给 StreamSupervisor。

请求成功之前的所有失败都在这里抛出，此时调用方还没有拿到任何片段。
"""

from typing import AsyncIterator, Optional

import httpx

from command_chat.domain.exceptions import ApiError, NetworkError, SessionExpiredError
from command_chat.domain.models import StreamRequest
from command_chat.infrastructure.logging.logger import logger
from command_chat.providers.base import TokenProvider


class EnvTokenProvider:
    """从配置读取 token 的默认实现。

    logout 只清除内存中的 token，真正的跳转由 UI 层处理。
    """

    def __init__(self, settings):
        self._token = getattr(settings, "auth_token", None)

    def get_token(self) -> Optional[str]:
        return self._token

    def logout(self) -> None:
        self._token = None
        logger.info("Auth token cleared after 401")


class ResponseReader:
    """包装 httpx 流式响应；release() 幂等，底层只关闭一次。"""

    def __init__(self, response: httpx.Response, owned_client: Optional[httpx.AsyncClient] = None):
        self._response = response
        self._owned_client = owned_client
        self.released = False

    def aiter_bytes(self) -> AsyncIterator[bytes]:
        return self._response.aiter_bytes()

    async def release(self) -> None:
        if self.released:
            return
        self.released = True
        try:
            await self._response.aclose()
        finally:
            if self._owned_client is not None:
                await self._owned_client.aclose()


class ChatStreamClient:
    """流式聊天传输客户端。

    - name: 传输名称（供日志使用）。
    - open_stream: 发起请求并返回 ResponseReader。

    未传入 http_client 时每次请求创建一个 AsyncClient，随 ResponseReader 一起关闭。
    """

    name = "command"

    def __init__(
        self,
        settings,
        token_provider: Optional[TokenProvider] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        # Settings 里包含 api_base、超时等配置
        self._settings = settings
        self._token_provider = token_provider or EnvTokenProvider(settings)
        self._http_client = http_client

    async def open_stream(self, req: StreamRequest) -> ResponseReader:
        owned = self._http_client is None
        client = self._http_client or httpx.AsyncClient(timeout=self._timeout(), trust_env=False)
        try:
            http_req = client.build_request(
                "POST",
                self._settings.chat_url,
                json=req.to_payload(),
                headers=self._headers(),
            )
            resp = await client.send(http_req, stream=True)
        except httpx.RequestError as e:
            if owned:
                await client.aclose()
            # 网络错误：DNS 失败、连接超时等
            raise NetworkError(code="NETWORK_ERROR", message=str(e) or type(e).__name__) from e
        except BaseException:
            if owned:
                await client.aclose()
            raise

        reader = ResponseReader(resp, client if owned else None)
        if resp.status_code == 401:
            await reader.release()
            self._token_provider.logout()
            raise SessionExpiredError(code="SESSION_EXPIRED", message="Session expired", http_status=401)
        if not resp.is_success:
            try:
                message = await self._error_message(resp)
            finally:
                await reader.release()
            logger.error(
                "Chat request rejected",
                extra={"extra": {"status": resp.status_code, "error": message}},
            )
            raise ApiError(code="API_ERROR", message=message, http_status=resp.status_code)
        return reader

    def _headers(self) -> dict:
        headers = {"Content-Type": "application/json", "Accept": "text/event-stream"}
        token = self._token_provider.get_token()
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    def _timeout(self) -> httpx.Timeout:
        return httpx.Timeout(
            self._settings.http_timeout,
            read=getattr(self._settings, "stream_read_timeout", None),
        )

    @staticmethod
    async def _error_message(resp: httpx.Response) -> str:
        """从错误响应体中提取 `error` 字段，解析失败时退回状态描述。"""

        fallback = f"HTTP {resp.status_code}"
        try:
            await resp.aread()
            data = resp.json()
        except (httpx.HTTPError, ValueError):
            return resp.reason_phrase or fallback
        if isinstance(data, dict):
            error = data.get("error")
            if isinstance(error, str) and error:
                return error
        return fallback
