"""对外的聊天参与者 (participant) 入口。

handle(question, command) 是宿主唯一需要调用的请求/响应接口：

- command == "change": 重新选择 assistant。
- command == "clearsaved": 清除已保存的 assistant。
- 其他情况: 向当前 assistant 提问。

所有业务异常都在这里转换为简短的用户提示（鉴权错误附带设置步骤），
原始后端错误只写日志。
"""

import logging
from typing import Dict, List, Optional

from assistant_core.agents.cancellation import CancellationToken
from assistant_core.api.host import InteractiveHost
from assistant_core.api.service import AssistantService
from assistant_core.config.provider import ConfigurationProvider
from assistant_core.domain.exceptions import (
    AssistantNotFound,
    AuthenticationError,
    BackendUnavailable,
    BusinessError,
    InvalidInput,
    MalformedResponse,
    RunCancelled,
    RunFailed,
    RunTimeout,
)
from assistant_core.infrastructure.logging.logger import log_event, logger
from assistant_core.providers.registry import SAMPLE_ASSISTANT


EMPTY_MESSAGE = "Please enter a non-empty message."
NO_ASSISTANT_MESSAGE = "No assistant selected. Please use the `/change` command to select an assistant."
NO_RESPONSE_MESSAGE = "I'm sorry, but I couldn't generate a response. Please try again."
GENERIC_ERROR_MESSAGE = "An error occurred while processing your request. Please try again."
UNEXPECTED_ERROR_MESSAGE = "An unexpected error occurred. Please try again."
AUTH_ERROR_MESSAGE = "The provided API key is incorrect. Please enter a valid API key in the extension settings."
AUTH_REMEDIATION = (
    "To set your API key, follow these steps:\n\n"
    "1. Open the `.env` file (or `config.yaml`) in your project root.\n"
    "2. Set `ASSISTANT_API_KEY` (or `ASSISTANT_ALTERNATE_API_KEY` and `ASSISTANT_ALTERNATE_ENDPOINT` "
    "for the alternate provider).\n"
    "3. Save the file and restart the session.\n"
    "4. You can also enter your API key interactively with the setup command."
)


class AssistantParticipant:
    def __init__(
        self,
        service: AssistantService,
        host: InteractiveHost,
        config: ConfigurationProvider,
        persist_selection: bool = False,
    ):
        self._service = service
        self._host = host
        self._config = config
        self._persist = persist_selection

    async def handle(
        self,
        question: str,
        command: Optional[str] = None,
        code_context: Optional[str] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> Dict[str, str]:
        """处理一次宿主请求，返回 {"content": 本次输出的全部 markdown}。"""

        parts: List[str] = []
        try:
            if command == "change":
                # 用户主动重新选择后，不再需要切换后端触发的那次选择
                self._service.consume_reselect()
                await self._change_assistant(parts)
            elif command == "clearsaved":
                self._config.update("selectedAssistantId", None, persist=self._persist)
                self._out(
                    parts,
                    "The saved assistant ID has been cleared. "
                    "Please use the `/change` command to select a new assistant.",
                )
            else:
                if self._service.consume_reselect():
                    # 旧后端的 assistant id 在新后端上无效，放弃选择时不能继续沿用
                    self._config.update("selectedAssistantId", None, persist=self._persist)
                    await self._change_assistant(parts)
                await self._answer(parts, question, code_context, cancel_token)
        except BusinessError as e:
            log_event(logging.ERROR, "Request failed", {"command": command or ""}, code=e.code, error=e.message)
            for text in describe_error(e):
                self._out(parts, text)
        except Exception:  # noqa: BLE001 - 宿主边界，任何异常都转换为用户提示
            logger.exception("Unexpected error")
            self._out(parts, UNEXPECTED_ERROR_MESSAGE)
        return {"content": "".join(parts)}

    async def select_assistant(self, parts: Optional[List[str]] = None) -> Optional[str]:
        """列出 assistant 并让用户选择，返回选中的 id。

        - 没有 assistant: 询问是否创建示例 assistant。
        - 只有一个: 自动选择。
        - 多个: 通过宿主单选。
        """

        parts = parts if parts is not None else []
        directory = self._service.directory
        assistants = await directory.list()

        if not assistants:
            choice = await self._host.choose_one(
                f'No assistants found. Would you like to create a sample "{SAMPLE_ASSISTANT.name}" assistant?',
                ["Yes", "No"],
            )
            if choice != "Yes":
                self._out(parts, "No assistants available. Please create an assistant to proceed.")
                return None
            try:
                assistant = await directory.create_sample()
            except BusinessError as e:
                log_event(logging.ERROR, "Error creating sample assistant", {}, code=e.code, error=e.message)
                self._out(
                    parts,
                    "\nAn error occurred while creating the sample assistant. "
                    "Please create one manually using the web interface.",
                )
                return None
            self._out(
                parts,
                f'\nSample assistant "{assistant.label}" created successfully. You can now chat with it.\n',
            )
            return assistant.id

        if len(assistants) == 1:
            assistant = assistants[0]
            self._out(parts, f"Automatically selected assistant: {assistant.label}\n \n")
            return assistant.id

        self._out(parts, "Please select an assistant.\n")
        picked = await self._host.choose_one("Select an assistant", [a.label for a in assistants])
        selected = next((a for a in assistants if a.label == picked), None) if picked else None
        if selected is None:
            self._out(parts, "No assistant selected. Please select an assistant to proceed.")
            return None
        self._out(parts, f"Selected assistant: {picked}\n")
        return selected.id

    async def _change_assistant(self, parts: List[str]) -> None:
        assistant_id = await self.select_assistant(parts)
        if not assistant_id:
            self._out(parts, "No assistant selected. Please try again.")
            return
        self._config.update("selectedAssistantId", assistant_id, persist=self._persist)
        try:
            assistant = await self._service.directory.resolve(assistant_id)
        except AssistantNotFound:
            assistant = None
        if assistant is not None and assistant.name:
            self._out(parts, f"You have switched to the assistant: **{assistant.name}**. How can I assist you today?")
        else:
            self._out(parts, f"You have switched to the assistant with ID: **{assistant_id}**. How can I assist you today?")

    async def _answer(
        self,
        parts: List[str],
        question: str,
        code_context: Optional[str],
        cancel_token: Optional[CancellationToken],
    ) -> None:
        assistant_id = self._config.get("selectedAssistantId")
        if not assistant_id:
            self._out(parts, NO_ASSISTANT_MESSAGE)
            return
        if not question or not question.strip():
            self._out(parts, EMPTY_MESSAGE)
            return

        prompt = question
        if code_context and self._config.get("sendCodeContext", False):
            prompt = f"{question}\n\n```\n{code_context}\n```"

        answer = await self._service.ask(prompt, assistant_id=assistant_id, cancel_token=cancel_token)
        if answer.content:
            self._out(parts, answer.content)
        else:
            log_event(logging.WARNING, "Empty answer content", {"run_id": answer.run_id})
            self._out(parts, NO_RESPONSE_MESSAGE)

    def _out(self, parts: List[str], text: str) -> None:
        self._host.emit(text)
        parts.append(text)


def describe_error(err: BusinessError) -> List[str]:
    """把业务异常转换为面向用户的提示，不暴露后端原始错误。"""

    if isinstance(err, AuthenticationError):
        return [AUTH_ERROR_MESSAGE, "\n\n" + AUTH_REMEDIATION]
    if isinstance(err, InvalidInput):
        return [err.message]
    if isinstance(err, RunFailed):
        return [f"The assistant run ended with status **{err.status}**: {err.reason}"]
    if isinstance(err, RunCancelled):
        return ["The request was cancelled."]
    if isinstance(err, RunTimeout):
        return ["The assistant is taking too long to respond. Please try again later."]
    if isinstance(err, AssistantNotFound):
        return ["The selected assistant could not be found. Please use the `/change` command to select another assistant."]
    if isinstance(err, MalformedResponse):
        return [NO_RESPONSE_MESSAGE]
    if isinstance(err, BackendUnavailable):
        return [GENERIC_ERROR_MESSAGE]
    return [UNEXPECTED_ERROR_MESSAGE]


async def setup_credentials(
    host: InteractiveHost,
    config: ConfigurationProvider,
    persist: bool = True,
) -> bool:
    """首次使用时引导用户选择后端并录入密钥，成功返回 True。"""

    choice = await host.choose_one("You need to enter an API key", ["Primary", "Alternate"])
    try:
        if choice == "Primary":
            api_key = await host.input_text("sk-xxxxxxxxxxxxxxxxxxxxxxxxxxxxxxxx", is_secret=True)
            if not api_key:
                host.emit("No API key provided. Please set your API key to use the AI assistant.")
                return False
            config.update("apiKey", api_key, persist=persist)
            config.update("provider", "primary", persist=persist)
            return True
        if choice == "Alternate":
            api_key = await host.input_text("xxxxxxxxxxxxxxxxxxxxxxxxxxxxxxxx", is_secret=True)
            if not api_key:
                host.emit("No alternate API key provided. Please set your API key to use the AI assistant.")
                return False
            endpoint = await host.input_text("Alternate endpoint")
            if not endpoint:
                host.emit("No alternate endpoint provided. Please set your endpoint to use the AI assistant.")
                return False
            config.update("alternateApiKey", api_key, persist=persist)
            config.update("alternateEndpoint", endpoint, persist=persist)
            config.update("provider", "alternate", persist=persist)
            return True
    except InvalidInput as e:
        log_event(logging.WARNING, "Rejected credentials", {}, code=e.code)
        host.emit("The value you entered is not valid. Please try again.")
        return False
    return False
