"""Assistant 目录：从当前后端列出 / 查找 assistant，统一为 {id, name}。"""

from typing import List, Optional

from assistant_core.domain.exceptions import AssistantNotFound
from assistant_core.domain.models import Assistant
from assistant_core.providers.base import BackendAdapter
from assistant_core.providers.registry import SAMPLE_ASSISTANT, SampleAssistant


class AssistantDirectory:
    def __init__(self, adapter: BackendAdapter, page_size: int = 20):
        self._adapter = adapter
        self._page_size = page_size

    async def list(self) -> List[Assistant]:
        """最多 page_size 个，按创建时间倒序。"""
        assistants = await self._adapter.list_assistants(self._page_size)
        return assistants[: self._page_size]

    async def resolve(self, assistant_id: str) -> Assistant:
        if self._adapter.supports_retrieve:
            assistant = await self._adapter.retrieve_assistant(assistant_id)
        else:
            assistant = next((a for a in await self.list() if a.id == assistant_id), None)
        if assistant is None:
            raise AssistantNotFound(code="ASSISTANT_NOT_FOUND", message=assistant_id)
        return assistant

    async def find_by_name(self, name: str) -> Optional[Assistant]:
        for assistant in await self.list():
            if assistant.name == name:
                return assistant
        return None

    async def create_sample(self, sample: SampleAssistant = SAMPLE_ASSISTANT) -> Assistant:
        return await self._adapter.create_assistant(sample.name, sample.instructions, sample.model)
