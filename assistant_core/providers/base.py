"""后端适配器 (BackendAdapter) 抽象接口。

上层 Orchestrator / Registry / Directory 不直接依赖具体后端的 HTTP 细节，而是依赖此协议：

- job 型后端（AssistantsClient）原生提供 thread/run/message 五个操作。
- 直连型后端（DirectCallClient）没有会话与 run 的概念，在适配器内部模拟，
  start_job 一次往返即返回终态 run。

Orchestrator 内部绝不按后端类型分支，差异只存在于各适配器实现中。
HTTP 错误到业务异常的转换统一放在 translate_http_error 中。
"""

import json
from typing import List, Optional, Protocol

import httpx

from assistant_core.domain.exceptions import (
    AuthenticationError,
    BackendUnavailable,
    BusinessError,
    RateLimitError,
)
from assistant_core.domain.models import Assistant, Job, Message, Role


class BackendAdapter(Protocol):
    """后端适配器协议。

    - name: 后端名称，用于日志。
    - supports_retrieve: 是否支持按 id 直接查询 assistant；否则由目录扫描 list。
    """

    name: str
    supports_retrieve: bool

    async def create_conversation(self) -> str:
        ...

    async def append_message(self, conversation_id: str, role: Role, text: str) -> None:
        ...

    async def start_job(self, conversation_id: str, assistant_id: str) -> Job:
        ...

    async def poll_job(self, conversation_id: str, job_id: str) -> Job:
        ...

    async def list_messages(self, conversation_id: str, run_id: Optional[str] = None) -> List[Message]:
        """返回会话消息，统一为时间正序（旧 -> 新）；给出 run_id 时只返回该 run 产生的消息。"""

        ...

    async def list_assistants(self, limit: int) -> List[Assistant]:
        ...

    async def retrieve_assistant(self, assistant_id: str) -> Optional[Assistant]:
        ...

    async def create_assistant(self, name: str, instructions: str, model: str) -> Assistant:
        ...


_AUTH_CODES = {"invalid_api_key", "invalid_authentication", "unauthorized"}
_AUTH_PHRASES = ("incorrect api key", "invalid api key", "access denied due to invalid subscription key")


def _error_payload(resp: httpx.Response) -> tuple[Optional[str], str]:
    """尽量从错误响应中取出 (error.code, error.message)。"""

    try:
        data = resp.json()
    except (json.JSONDecodeError, ValueError):
        return None, resp.text
    error = data.get("error") if isinstance(data, dict) else None
    if isinstance(error, dict):
        return error.get("code"), error.get("message") or resp.text
    return None, resp.text


def translate_http_error(provider: str, resp: httpx.Response) -> BusinessError:
    """把非 2xx 响应转换为业务异常。

    优先使用状态码与后端给出的 error.code；只有两者都无法判断时，
    才对错误信息做 "incorrect api key" 之类的子串匹配。
    """

    code, message = _error_payload(resp)
    status = resp.status_code
    if status in (401, 403) or (code or "").lower() in _AUTH_CODES:
        return AuthenticationError(code="AUTH_ERROR", message=message, http_status=status, provider=provider)
    if status == 429:
        return RateLimitError(code="RATE_LIMIT", message=message, http_status=status, provider=provider)
    if any(phrase in (message or "").lower() for phrase in _AUTH_PHRASES):
        return AuthenticationError(code="AUTH_ERROR", message=message, http_status=status, provider=provider)
    return BackendUnavailable(code="API_ERROR", message=message, http_status=status, provider=provider)


def translate_request_error(provider: str, exc: httpx.RequestError) -> BusinessError:
    """网络错误：DNS 失败、连接超时等。"""

    return BackendUnavailable(code="NETWORK_ERROR", message=str(exc), http_status=503, provider=provider)
