"""Run Orchestrator：一次问答的核心状态机。

Submitting -> Queued -> Running -> {Completed | Failed | Cancelled | Expired}

1. 校验输入（空问题 / 缺少 assistant id 不发任何请求）。
2. 通过 ConversationRegistry 取得（或创建）用户会话。
3. 追加 user 消息，启动 run。
4. 按固定间隔轮询，直到 run 离开 queued / in_progress。
5. completed 时读取会话消息，提取属于本次 run 的 assistant 文本；
   其他终态抛出 RunFailed。

Orchestrator 不做任何自动重试，也不区分后端类型。
"""

import logging
import time
from dataclasses import asdict
from typing import Any, Dict, List, Optional
from uuid import uuid4

from assistant_core.agents.cancellation import CancellationToken
from assistant_core.agents.conversation_registry import ConversationRegistry
from assistant_core.domain.exceptions import (
    InvalidInput,
    MalformedResponse,
    RunCancelled,
    RunFailed,
    RunTimeout,
)
from assistant_core.domain.models import Answer, ConversationHandle, Job, Message
from assistant_core.infrastructure.logging.logger import log_event
from assistant_core.providers.base import BackendAdapter


DEFAULT_POLL_INTERVAL = 0.8


def estimate_tokens(text: str) -> int:
    """粗略估算 token 数（长度 / 4），仅用于日志。"""

    return max(1, len(text) // 4) if text else 0


def extract_answer(messages: List[Message], run_id: str) -> Answer:
    """从会话消息中提取某次 run 的回答。

    只保留 role=assistant 且 run_id 匹配的消息，按时间正序拼接其文本分片
    （无分隔符），非文本分片忽略。
    """

    replies = [m for m in messages if m.role == "assistant" and m.run_id == run_id]
    if not replies:
        raise MalformedResponse(
            code="MALFORMED_RESPONSE",
            message=f"No assistant message found for run {run_id}",
            run_id=run_id,
        )
    # 稳定排序：created_at 相同的消息保持后端给出的顺序
    replies.sort(key=lambda m: m.created_at or 0)
    if not any(m.has_text() for m in replies):
        raise MalformedResponse(
            code="MALFORMED_RESPONSE",
            message="Unexpected structure of assistant message",
            run_id=run_id,
            messages=[asdict(m) for m in replies],
        )
    return Answer(content="".join(m.text() for m in replies), run_id=run_id)


class RunOrchestrator:
    def __init__(
        self,
        adapter: BackendAdapter,
        registry: ConversationRegistry,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        max_poll_attempts: Optional[int] = None,
    ):
        self._adapter = adapter
        self._registry = registry
        self._poll_interval = poll_interval
        # None 表示不设上限，一直轮询到终态或被取消
        self._max_poll_attempts = max_poll_attempts

    async def ask(
        self,
        assistant_id: Optional[str],
        question: str,
        user_id: str,
        *,
        cancel_token: Optional[CancellationToken] = None,
    ) -> Answer:
        """提交一个问题并等待回答。

        Args:
            assistant_id: 目标 assistant
            question: 用户问题（不能为空或全空白）
            user_id: 稳定的用户标识，用于定位会话
            cancel_token: 可选的取消信号

        Returns:
            Answer，content 为本次 run 产生的全部文本

        Raises:
            InvalidInput / BackendUnavailable / AuthenticationError /
            RunFailed / RunCancelled / RunTimeout / MalformedResponse
        """
        if not assistant_id:
            raise InvalidInput(code="INVALID_INPUT", message="Assistant ID is required.")
        if not question or not question.strip():
            raise InvalidInput(code="INVALID_INPUT", message="Question must not be empty.")

        start_time = time.monotonic()
        token = cancel_token or CancellationToken()
        log_ctx: Dict[str, Any] = {
            "trace_id": f"tr-{uuid4().hex}",
            "backend": self._adapter.name,
            "assistant_id": assistant_id,
            "user_id": user_id,
        }

        handle = await self._registry.get_or_create(user_id)
        log_ctx["conversation_id"] = handle.conversation_id

        # 追加失败时直接中止；已写入的 user 消息不回滚
        await self._adapter.append_message(handle.conversation_id, "user", question)
        log_event(
            logging.INFO,
            "Appended user message",
            log_ctx,
            question_tokens=estimate_tokens(question),
        )

        job = await self._adapter.start_job(handle.conversation_id, assistant_id)
        log_ctx["run_id"] = job.id
        log_event(logging.INFO, "Started run", log_ctx, status=job.status)

        job = await self._wait_for_terminal(handle, job, token, log_ctx)

        if job.status != "completed":
            reason = job.error.message if job.error else None
            log_event(logging.WARNING, "Run ended without completion", log_ctx, status=job.status, reason=reason)
            raise RunFailed(job.status, reason, run_id=job.id)

        messages = await self._adapter.list_messages(handle.conversation_id, run_id=job.id)
        try:
            answer = extract_answer(messages, job.id)
        except MalformedResponse as e:
            log_event(logging.ERROR, "Malformed assistant response", log_ctx, detail=e.message, raw=e.extra)
            raise

        log_event(
            logging.INFO,
            "Completed run",
            log_ctx,
            elapsed_seconds=round(time.monotonic() - start_time, 2),
            answer_tokens=estimate_tokens(answer.content),
        )
        return answer

    async def _wait_for_terminal(
        self,
        handle: ConversationHandle,
        job: Job,
        token: CancellationToken,
        log_ctx: Dict[str, Any],
    ) -> Job:
        polls = 0
        while job.is_active:
            if token.cancelled:
                self._log_cancel(log_ctx, polls)
                raise RunCancelled(run_id=job.id)
            if self._max_poll_attempts is not None and polls >= self._max_poll_attempts:
                log_event(logging.WARNING, "Run poll limit reached", log_ctx, polls=polls)
                raise RunTimeout(job.id, polls)
            if await token.sleep(self._poll_interval):
                self._log_cancel(log_ctx, polls)
                raise RunCancelled(run_id=job.id)
            job = await self._adapter.poll_job(handle.conversation_id, job.id)
            polls += 1
            log_event(logging.DEBUG, "Polled run", log_ctx, status=job.status, polls=polls)
        return job

    @staticmethod
    def _log_cancel(log_ctx: Dict[str, Any], polls: int) -> None:
        log_event(logging.INFO, "Run cancelled by caller", log_ctx, polls=polls)
