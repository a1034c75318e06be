"""Job 型后端适配器（OpenAI Assistants v2）。

本模块负责：

1. 把 BackendAdapter 的抽象操作映射为 Assistants REST 接口：
   - POST /threads                      -> create_conversation
   - POST /threads/{id}/messages        -> append_message
   - POST /threads/{id}/runs            -> start_job
   - GET  /threads/{id}/runs/{run_id}   -> poll_job
   - GET  /threads/{id}/messages        -> list_messages
2. 处理网络/API 异常，统一转换为 domain.exceptions 中的业务异常。
3. 把响应 JSON 解析为 Assistant / Job / Message 模型。

消息列表按 order=asc 请求，并在本地按 created_at 再做一次稳定排序，
保证交给 Orchestrator 的始终是时间正序。
"""

from typing import Any, Dict, List, Optional

import httpx

from assistant_core.domain.exceptions import AuthenticationError, BackendUnavailable, MalformedResponse
from assistant_core.domain.models import (
    Assistant,
    Job,
    JobError,
    Message,
    Role,
    parse_content_parts,
)
from assistant_core.providers.base import translate_http_error, translate_request_error
from assistant_core.providers.registry import PRIMARY_CONFIG, ProviderConfig


class AssistantsClient:
    """OpenAI Assistants 后端客户端实现。"""

    name = "primary"
    supports_retrieve = True

    def __init__(
        self,
        api_key: Optional[str],
        base_url: Optional[str] = None,
        timeout: float = 30.0,
        config: ProviderConfig = PRIMARY_CONFIG,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._api_key = api_key
        self._base_url = (base_url or config.base_url).rstrip("/")
        self._timeout = timeout
        self._config = config
        # 测试时可注入 httpx.MockTransport
        self._transport = transport

    # ---- 会话 / run ----

    async def create_conversation(self) -> str:
        data = await self._request("POST", "/threads", json={})
        return self._require(data, "id", "thread")

    async def append_message(self, conversation_id: str, role: Role, text: str) -> None:
        await self._request(
            "POST",
            f"/threads/{conversation_id}/messages",
            json={"role": role, "content": text},
        )

    async def start_job(self, conversation_id: str, assistant_id: str) -> Job:
        data = await self._request(
            "POST",
            f"/threads/{conversation_id}/runs",
            json={"assistant_id": assistant_id},
        )
        return self._parse_job(data)

    async def poll_job(self, conversation_id: str, job_id: str) -> Job:
        data = await self._request("GET", f"/threads/{conversation_id}/runs/{job_id}")
        return self._parse_job(data)

    async def list_messages(self, conversation_id: str, run_id: Optional[str] = None) -> List[Message]:
        """拉取会话消息（自动翻页），返回时间正序。

        给出 run_id 时由后端按 run 过滤，避免每次回答都翻完整个 thread。
        """

        params: Dict[str, Any] = {"order": "asc", "limit": 100}
        if run_id:
            params["run_id"] = run_id
        messages: List[Message] = []
        while True:
            data = await self._request("GET", f"/threads/{conversation_id}/messages", params=params)
            page = data.get("data") or []
            for item in page:
                msg = self._parse_message(item)
                if msg is not None:
                    messages.append(msg)
            if not data.get("has_more") or not page:
                break
            params["after"] = data.get("last_id") or page[-1].get("id")
        messages.sort(key=lambda m: m.created_at or 0)
        return messages

    # ---- assistant 目录 ----

    async def list_assistants(self, limit: int) -> List[Assistant]:
        data = await self._request(
            "GET",
            "/assistants",
            params={"order": "desc", "limit": limit},
        )
        return [self._parse_assistant(item) for item in data.get("data") or [] if item.get("id")]

    async def retrieve_assistant(self, assistant_id: str) -> Optional[Assistant]:
        try:
            data = await self._request("GET", f"/assistants/{assistant_id}")
        except BackendUnavailable as e:
            # 404 视为不存在，其余错误照常抛出
            if e.http_status == 404:
                return None
            raise
        return self._parse_assistant(data)

    async def create_assistant(self, name: str, instructions: str, model: str) -> Assistant:
        data = await self._request(
            "POST",
            "/assistants",
            json={"name": name, "instructions": instructions, "model": model},
        )
        return self._parse_assistant(data)

    # ---- 辅助方法 ----

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        if not self._api_key:
            # 配置缺失按鉴权错误处理，方便上层给出设置指引
            raise AuthenticationError(code="MISSING_API_KEY", message="API key not set", provider=self.name)
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout,
                trust_env=False,
                transport=self._transport,
            ) as client:
                resp = await client.request(
                    method,
                    f"{self._base_url}{path}",
                    json=json,
                    params=params,
                    headers=self._headers(),
                )
        except httpx.RequestError as e:
            raise translate_request_error(self.name, e)
        if resp.status_code >= 400:
            raise translate_http_error(self.name, resp)
        try:
            data = resp.json()
        except ValueError as e:
            raise MalformedResponse(code="MALFORMED_RESPONSE", message=f"{path}: {e}", provider=self.name)
        if not isinstance(data, dict):
            raise MalformedResponse(code="MALFORMED_RESPONSE", message=f"{path}: expected object", provider=self.name)
        return data

    def _headers(self) -> Dict[str, str]:
        headers = {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }
        headers.update(self._config.headers)
        return headers

    def _require(self, data: Dict[str, Any], key: str, what: str) -> str:
        value = data.get(key)
        if not value:
            raise MalformedResponse(code="MALFORMED_RESPONSE", message=f"{what} response has no {key!r}", raw=data)
        return str(value)

    def _parse_job(self, data: Dict[str, Any]) -> Job:
        last_error = data.get("last_error") or None
        error = None
        if isinstance(last_error, dict) and last_error.get("message"):
            error = JobError(message=last_error["message"], code=last_error.get("code"))
        return Job(
            id=self._require(data, "id", "run"),
            status=str(data.get("status") or "unknown"),
            error=error,
        )

    @staticmethod
    def _parse_assistant(data: Dict[str, Any]) -> Assistant:
        return Assistant(id=data["id"], name=data.get("name"))

    @staticmethod
    def _parse_message(data: Dict[str, Any]) -> Optional[Message]:
        role = data.get("role")
        if role not in ("user", "assistant"):
            return None
        return Message(
            role=role,
            content=parse_content_parts(data.get("content")),
            run_id=data.get("run_id"),
            created_at=data.get("created_at"),
            id=data.get("id"),
        )
