"""后端会话服务。

AssistantService 把 BackendAdapter、ConversationRegistry、AssistantDirectory
和 RunOrchestrator 作为一组对象统一构建；后端相关配置
（provider / apiKey / alternateApiKey / alternateEndpoint）变化时，
先让旧注册表失效，再整体重建。
"""

import logging
import time
from typing import Callable, Optional

import httpx

from assistant_core.agents.assistant_directory import AssistantDirectory
from assistant_core.agents.cancellation import CancellationToken
from assistant_core.agents.conversation_registry import ConversationRegistry
from assistant_core.agents.run_orchestrator import RunOrchestrator
from assistant_core.config.provider import ConfigChange, ConfigurationProvider
from assistant_core.config.settings import Settings
from assistant_core.domain.models import Answer
from assistant_core.infrastructure.logging.logger import log_event
from assistant_core.infrastructure.storage.json_store import KeyValueStore, get_or_create_user_id
from assistant_core.providers import backend_fingerprint, create_adapter
from assistant_core.providers.base import BackendAdapter
from assistant_core.providers.registry import get_provider_config


AdapterFactory = Callable[[Settings], BackendAdapter]


class AssistantService:
    def __init__(
        self,
        config: ConfigurationProvider,
        store: Optional[KeyValueStore] = None,
        adapter_factory: Optional[AdapterFactory] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._config = config
        self._store = store
        self._adapter_factory = adapter_factory or (lambda cfg: create_adapter(cfg, transport=transport))
        self._user_id: Optional[str] = None
        self._reselect_required = False
        self._build()
        self._unsubscribe = config.on_change(self._on_config_change)

    @property
    def user_id(self) -> str:
        if self._user_id is None:
            # 未提供持久化存储时，用户 id 只在本进程内稳定
            self._user_id = get_or_create_user_id(self._store) if self._store is not None else f"user_{int(time.time() * 1000)}"
        return self._user_id

    async def ask(
        self,
        question: str,
        *,
        assistant_id: Optional[str] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> Answer:
        return await self.orchestrator.ask(
            assistant_id or self._config.get("selectedAssistantId"),
            question,
            self.user_id,
            cancel_token=cancel_token,
        )

    def consume_reselect(self) -> bool:
        """provider 切换后第一次调用返回 True，提示上层重新选择 assistant。"""

        required, self._reselect_required = self._reselect_required, False
        return required

    def close(self) -> None:
        self._unsubscribe()

    def _build(self) -> None:
        cfg = self._config.settings
        self.adapter = self._adapter_factory(cfg)
        namespace = backend_fingerprint(cfg) if self._store is not None else None
        self.registry = ConversationRegistry(self.adapter, store=self._store, namespace=namespace)
        self.directory = AssistantDirectory(self.adapter, page_size=get_provider_config(cfg.resolved_provider()).page_size)
        self.orchestrator = RunOrchestrator(
            self.adapter,
            self.registry,
            poll_interval=cfg.poll_interval,
            max_poll_attempts=cfg.max_poll_attempts,
        )

    def _on_config_change(self, change: ConfigChange) -> None:
        if not change.affects_backend:
            return
        self.registry.invalidate_all()
        self._build()
        if change.key == "provider":
            self._reselect_required = True
        log_event(
            logging.INFO,
            "Rebuilt backend after configuration change",
            {"backend": self.adapter.name},
            key=change.key,
        )
