"""统一业务异常模型。

所有跨模块抛出的业务级错误都应该继承自 BusinessError，
便于在参与者 (participant) 层做统一捕获与用户提示。
Orchestrator 自身从不重试，错误一律原样交给调用方。
"""

from typing import Optional


class BusinessError(Exception):
    """业务异常基类。

    Attributes:
        code: 机器可读错误码（如 "STORE_READ_ERROR"）。
        message: 用于日志的错误信息（不直接展示给最终用户）。
        http_status: 映射到 HTTP 时可用的状态码，默认 400。
        extra: 其他补充字段（例如 run_id、provider 等）。
    """

    def __init__(self, code: str, message: str, http_status: int = 400, **extra):
        self.code = code
        self.message = message
        self.http_status = http_status
        self.extra = extra
        super().__init__(message)


class InvalidInput(BusinessError):
    """参数校验失败：空问题、未选择 assistant 等。不会重试。"""


class BackendUnavailable(BusinessError):
    """网络/传输层错误，或后端返回的非鉴权类错误。"""


class RateLimitError(BackendUnavailable):
    """后端限流 (HTTP 429)，由调用方决定是否稍后重试。"""


class AuthenticationError(BusinessError):
    """API Key 无效或缺失。"""


class AssistantNotFound(BusinessError):
    """指定 id 的 assistant 不存在。"""


class MalformedResponse(BusinessError):
    """run 已完成但没有可提取的文本内容。"""


class StoreError(BusinessError):
    """本地持久化读写失败。"""


class RunFailed(BusinessError):
    """run 进入了非 completed 的终态。"""

    def __init__(self, status: str, reason: Optional[str] = None, **extra):
        self.status = status
        self.reason = reason or "Unknown reason"
        super().__init__(
            code="RUN_FAILED",
            message=f"Run status: {status}. {self.reason}",
            **extra,
        )


class RunCancelled(BusinessError):
    """调用方在轮询过程中取消了本次问答，远端 run 不做撤销。"""

    def __init__(self, run_id: Optional[str] = None, **extra):
        self.run_id = run_id
        super().__init__(code="RUN_CANCELLED", message="Run cancelled by caller", run_id=run_id, **extra)


class RunTimeout(BusinessError):
    """超过 max_poll_attempts 仍未进入终态。"""

    def __init__(self, run_id: str, attempts: int, **extra):
        self.run_id = run_id
        self.attempts = attempts
        super().__init__(
            code="RUN_TIMEOUT",
            message=f"Run {run_id} still active after {attempts} polls",
            run_id=run_id,
            **extra,
        )
