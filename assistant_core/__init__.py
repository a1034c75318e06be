"""Assistant Core 顶层包。

该包让交互式客户端向远端 assistant 提问并获得回答，
包括配置加载、领域模型、后端适配（job 型 / 直连型）、
会话注册、run 轮询编排与对外的聊天参与者入口。
"""

from assistant_core.agents.cancellation import CancellationToken
from assistant_core.agents.run_orchestrator import RunOrchestrator
from assistant_core.api.participant import AssistantParticipant
from assistant_core.api.service import AssistantService

__all__ = ["AssistantParticipant", "AssistantService", "CancellationToken", "RunOrchestrator"]
