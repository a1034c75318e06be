"""直连型后端适配器（OpenAI 兼容 chat/completions）。

该类后端没有 thread / run 的概念，本适配器在进程内模拟：

- create_conversation: 生成一个本地会话 id，并维护该会话的消息记录。
- append_message: 只写入本地记录，不发请求。
- start_job: 把 system 指令 + 本地记录一次性发给 {endpoint}/chat/completions，
  同步等待结果，直接返回终态 run（completed 或 failed）。
- poll_job: 返回已保存的终态 run。
- list_messages: 返回本地记录，其中 assistant 回复带有本次 run 的 id。

assistant 列表来自配置（alternate_assistants），没有按 id 查询的接口，
由 AssistantDirectory 扫描 list 结果。
"""

import time
from typing import Any, Dict, List, Optional
from uuid import uuid4

import httpx

from assistant_core.domain.exceptions import AuthenticationError, BackendUnavailable, MalformedResponse
from assistant_core.domain.models import (
    Assistant,
    Job,
    JobError,
    Message,
    Role,
    TextPart,
    parse_content_parts,
)
from assistant_core.providers.base import translate_http_error, translate_request_error
from assistant_core.providers.registry import ALTERNATE_CONFIG, ProviderConfig


class DirectCallClient:
    """直连调用后端客户端实现。"""

    name = "alternate"
    supports_retrieve = False

    def __init__(
        self,
        api_key: Optional[str],
        endpoint: Optional[str],
        assistants: Optional[List[Dict[str, Any]]] = None,
        default_model: str = "gpt-3.5-turbo",
        timeout: float = 30.0,
        config: ProviderConfig = ALTERNATE_CONFIG,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._api_key = api_key
        self._endpoint = (endpoint or config.base_url).rstrip("/")
        self._default_model = default_model
        self._timeout = timeout
        self._config = config
        self._transport = transport
        # 按创建顺序保存 assistant 定义
        self._assistants: List[Dict[str, Any]] = [dict(a) for a in assistants or [] if a.get("id")]
        self._transcripts: Dict[str, List[Message]] = {}
        # 每个会话只保留最近一次 run，供紧随其后的 poll_job 读取
        self._jobs: Dict[str, Job] = {}

    # ---- 会话 / run ----

    async def create_conversation(self) -> str:
        conversation_id = f"local-{uuid4().hex}"
        self._transcripts[conversation_id] = []
        return conversation_id

    async def append_message(self, conversation_id: str, role: Role, text: str) -> None:
        self._transcript(conversation_id).append(
            Message(
                role=role,
                content=[TextPart(value=text)],
                created_at=int(time.time()),
                id=f"msg-{uuid4().hex}",
            )
        )

    async def start_job(self, conversation_id: str, assistant_id: str) -> Job:
        """一次往返完成整个 run，返回终态 Job。"""

        definition = self._find_definition(assistant_id)
        if definition is None:
            job = Job(
                id=f"run-{uuid4().hex}",
                status="failed",
                error=JobError(message=f"No assistant found with id '{assistant_id}'", code="not_found"),
            )
            self._jobs[conversation_id] = job
            return job

        job_id = f"run-{uuid4().hex}"
        payload = self._build_payload(conversation_id, definition)
        data = await self._post("/chat/completions", payload)

        choices = data.get("choices") or []
        if not choices:
            job = Job(id=job_id, status="failed", error=JobError(message="Backend returned no choices"))
        elif choices[0].get("finish_reason") == "content_filter":
            job = Job(
                id=job_id,
                status="failed",
                error=JobError(message="Response blocked by content filter", code="content_filter"),
            )
        else:
            message = choices[0].get("message") or {}
            self._transcript(conversation_id).append(
                Message(
                    role="assistant",
                    content=parse_content_parts(message.get("content")),
                    run_id=job_id,
                    created_at=data.get("created") or int(time.time()),
                    id=data.get("id") or f"msg-{uuid4().hex}",
                )
            )
            job = Job(id=job_id, status="completed")
        self._jobs[conversation_id] = job
        return job

    async def poll_job(self, conversation_id: str, job_id: str) -> Job:
        job = self._jobs.get(conversation_id)
        if job is None or job.id != job_id:
            raise BackendUnavailable(code="JOB_NOT_FOUND", message=job_id, http_status=404, provider=self.name)
        return job

    async def list_messages(self, conversation_id: str, run_id: Optional[str] = None) -> List[Message]:
        transcript = self._transcript(conversation_id)
        if run_id:
            return [m for m in transcript if m.run_id == run_id]
        return list(transcript)

    # ---- assistant 目录 ----

    async def list_assistants(self, limit: int) -> List[Assistant]:
        # 新建的排在前面，与 job 型后端的 order=desc 保持一致
        newest_first = list(reversed(self._assistants))[:limit]
        return [Assistant(id=str(a["id"]), name=a.get("name")) for a in newest_first]

    async def retrieve_assistant(self, assistant_id: str) -> Optional[Assistant]:
        return None

    async def create_assistant(self, name: str, instructions: str, model: str) -> Assistant:
        """注册一个仅在本进程内有效的 assistant 定义。"""

        definition = {
            "id": f"asst-local-{uuid4().hex[:12]}",
            "name": name,
            "instructions": instructions,
            "model": model,
        }
        self._assistants.append(definition)
        return Assistant(id=definition["id"], name=name)

    # ---- 辅助方法 ----

    def _transcript(self, conversation_id: str) -> List[Message]:
        # 持久化恢复的会话 id 在新进程里没有本地记录，从空记录继续
        return self._transcripts.setdefault(conversation_id, [])

    def _find_definition(self, assistant_id: str) -> Optional[Dict[str, Any]]:
        for definition in self._assistants:
            if str(definition.get("id")) == assistant_id:
                return definition
        return None

    def _build_payload(self, conversation_id: str, definition: Dict[str, Any]) -> Dict[str, Any]:
        history = self._transcript(conversation_id)[-self._config.max_context_messages:]
        messages: List[Dict[str, str]] = []
        if definition.get("instructions"):
            messages.append({"role": "system", "content": definition["instructions"]})
        for msg in history:
            text = msg.text()
            if text:
                messages.append({"role": msg.role, "content": text})
        return {
            "model": definition.get("model") or self._default_model,
            "messages": messages,
            "stream": False,
        }

    async def _post(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        if not self._api_key:
            raise AuthenticationError(code="MISSING_API_KEY", message="Alternate API key not set", provider=self.name)
        if not self._endpoint:
            raise BackendUnavailable(code="MISSING_ENDPOINT", message="Alternate endpoint not set", provider=self.name)
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout,
                trust_env=False,
                transport=self._transport,
            ) as client:
                resp = await client.post(
                    f"{self._endpoint}{path}",
                    json=payload,
                    headers={
                        "Authorization": f"Bearer {self._api_key}",
                        "api-key": self._api_key,
                        "Content-Type": "application/json",
                    },
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
