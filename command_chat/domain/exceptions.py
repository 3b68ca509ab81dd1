"""统一业务异常模型。

所有跨模块抛出的业务级错误都继承自 BusinessError，
便于 UI 层统一捕获并把错误写回助手消息。

注意：取消（supersede / stop）不是错误，不在此处建模，
Supervisor 会静默结束流而不会抛出任何异常。
"""


class BusinessError(Exception):
    """业务异常基类。

    Attributes:
        code: 机器可读错误码（如 "API_ERROR"）。
        message: 用户可读错误信息。
        http_status: 映射到 HTTP 时可用的状态码，默认 400。
        extra: 其他补充字段（例如 url、received 等）。
    """

    def __init__(self, code: str, message: str, http_status: int = 400, **extra):
        self.code = code
        self.message = message
        self.http_status = http_status
        self.extra = extra
        super().__init__(message)


class NetworkError(BusinessError):
    """网络层错误：请求在拿到响应之前失败（DNS、连接超时等）。"""


class StreamInterruptedError(NetworkError):
    """已经开始读取响应体之后连接中断。

    已经产出的片段不会被撤回，由调用方决定保留还是丢弃。
    """


class ApiError(BusinessError):
    """后端返回非 2xx 状态码时抛出。"""


class SessionExpiredError(ApiError):
    """后端返回 401，登录态已失效。"""


class ValidationError(BusinessError):
    """参数或配置校验失败。"""


class StreamConsumedError(BusinessError):
    """同一个 StreamSupervisor 被要求第二次产出流。"""
