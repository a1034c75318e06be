"""用户 -> 后端会话 (thread) 的注册表。

- 首次使用时通过 BackendAdapter 懒创建会话，之后复用。
- 同一用户的并发请求共享同一次创建（single-flight），不同用户互不影响。
- 后端配置变更时由上层调用 invalidate_all()，句柄不可跨后端复用。
- 可选地把句柄写入 KeyValueStore，按后端配置指纹 (namespace) 隔离。
"""

import asyncio
import logging
from typing import Dict, Optional

from assistant_core.domain.models import ConversationHandle
from assistant_core.infrastructure.logging.logger import log_event
from assistant_core.infrastructure.storage.json_store import KeyValueStore
from assistant_core.providers.base import BackendAdapter


class ConversationRegistry:
    def __init__(
        self,
        adapter: BackendAdapter,
        store: Optional[KeyValueStore] = None,
        namespace: Optional[str] = None,
    ):
        self._adapter = adapter
        self._store = store
        self._namespace = namespace
        self._handles: Dict[str, ConversationHandle] = {}
        self._pending: Dict[str, "asyncio.Task[ConversationHandle]"] = {}
        # invalidate_all 之后，进行中的创建结果不再写入缓存
        self._generation = 0

    async def get_or_create(self, user_id: str) -> ConversationHandle:
        handle = self._handles.get(user_id)
        if handle is not None:
            return handle
        handle = self._load_persisted(user_id)
        if handle is not None:
            self._handles[user_id] = handle
            return handle
        task = self._pending.get(user_id)
        if task is None:
            task = asyncio.ensure_future(self._create(user_id, self._generation))
            self._pending[user_id] = task
        # shield：某个等待者被取消不会中断其他等待者共享的创建
        return await asyncio.shield(task)

    def invalidate_all(self) -> None:
        self._generation += 1
        count = len(self._handles)
        self._handles.clear()
        self._pending.clear()
        if self._store is not None and self._namespace:
            self._store.set(self._store_key, None)
        log_event(logging.INFO, "Invalidated conversation handles", {"backend": self._adapter.name}, count=count)

    def cached(self, user_id: str) -> Optional[ConversationHandle]:
        return self._handles.get(user_id)

    async def _create(self, user_id: str, generation: int) -> ConversationHandle:
        log_ctx = {"backend": self._adapter.name, "user_id": user_id}
        try:
            conversation_id = await self._adapter.create_conversation()
            handle = ConversationHandle(user_id=user_id, conversation_id=conversation_id)
            if generation == self._generation:
                self._handles[user_id] = handle
                self._persist(handle)
            log_event(logging.INFO, "Created new conversation", log_ctx, conversation_id=conversation_id)
            return handle
        finally:
            if generation == self._generation:
                self._pending.pop(user_id, None)

    # ---- 持久化 ----

    @property
    def _store_key(self) -> str:
        return f"conversations.{self._namespace}"

    def _load_persisted(self, user_id: str) -> Optional[ConversationHandle]:
        if self._store is None or not self._namespace:
            return None
        saved = self._store.get(self._store_key) or {}
        conversation_id = saved.get(user_id)
        if not conversation_id:
            return None
        log_event(
            logging.DEBUG,
            "Using existing conversation",
            {"backend": self._adapter.name, "user_id": user_id},
            conversation_id=conversation_id,
        )
        return ConversationHandle(user_id=user_id, conversation_id=conversation_id)

    def _persist(self, handle: ConversationHandle) -> None:
        if self._store is None or not self._namespace:
            return
        saved = dict(self._store.get(self._store_key) or {})
        saved[handle.user_id] = handle.conversation_id
        self._store.set(self._store_key, saved)
