"""统一的 assistant / 会话 / run 数据模型。

本模块定义了 Orchestrator 与各后端适配器之间共享的标准数据结构：

- Assistant: 后端管理的具名 assistant（只读镜像）。
- ConversationHandle: 用户 -> 后端会话 (thread) 的映射。
- Job: 一次异步 run 及其状态。
- Message / ContentPart: 会话中的消息及其分片内容。
- Answer: 提取出的最终回答文本。

所有后端适配器（如 AssistantsClient、DirectCallClient）都必须只依赖这些模型，
并负责在各自的 API JSON 和这些模型之间做转换。
"""

from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, List, Literal, Optional, Union


# 消息角色：本系统只关心用户提问与 assistant 回复
Role = Literal["user", "assistant"]

# run 状态（与 OpenAI Assistants 的 status 字段对应）
JobStatus = Literal["queued", "in_progress", "completed", "failed", "cancelled", "expired"]

ACTIVE_STATUSES: FrozenSet[str] = frozenset({"queued", "in_progress"})
TERMINAL_STATUSES: FrozenSet[str] = frozenset({"completed", "failed", "cancelled", "expired"})


@dataclass(frozen=True)
class Assistant:
    """后端中的一个 assistant，身份由 id 决定。"""

    id: str
    name: Optional[str] = None

    @property
    def label(self) -> str:
        return self.name or self.id


@dataclass(frozen=True)
class ConversationHandle:
    """某个用户在当前后端配置下的会话句柄。"""

    user_id: str
    conversation_id: str


@dataclass(frozen=True)
class JobError:
    message: str
    code: Optional[str] = None


@dataclass(frozen=True)
class Job:
    """一次 run。

    - status: 后端上报的原始状态字符串。未知状态（如 requires_action）
      不在 ACTIVE_STATUSES 中，因此会被当作非 completed 终态处理。
    """

    id: str
    status: str
    error: Optional[JobError] = None

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES


@dataclass(frozen=True)
class TextPart:
    value: str
    type: str = "text"


@dataclass(frozen=True)
class OtherPart:
    """非文本分片（图片、文件引用等），提取回答时忽略。"""

    type: str
    raw: Dict[str, Any] = field(default_factory=dict)


ContentPart = Union[TextPart, OtherPart]


@dataclass
class Message:
    """会话中的一条消息。

    - run_id: 产生该消息的 run（用户消息通常为 None）。
    - created_at: 后端时间戳（秒），用于统一成时间正序。
    """

    role: Role
    content: List[ContentPart]
    run_id: Optional[str] = None
    created_at: Optional[int] = None
    id: Optional[str] = None

    def text(self) -> str:
        """按顺序拼接所有文本分片，无分隔符。"""

        return "".join(part.value for part in self.content if isinstance(part, TextPart))

    def has_text(self) -> bool:
        return any(isinstance(part, TextPart) for part in self.content)


@dataclass(frozen=True)
class Answer:
    content: str
    run_id: Optional[str] = None


def parse_content_parts(raw_parts: Any) -> List[ContentPart]:
    """把 OpenAI 风格的 content 数组解析为 ContentPart 列表。

    兼容两种文本形态：
    - {"type": "text", "text": {"value": "..."}}（Assistants API）
    - {"type": "text", "text": "..."} / 纯字符串（部分兼容实现）
    """

    if isinstance(raw_parts, str):
        return [TextPart(value=raw_parts)]
    parts: List[ContentPart] = []
    for item in raw_parts or []:
        if isinstance(item, str):
            parts.append(TextPart(value=item))
            continue
        if not isinstance(item, dict):
            continue
        kind = item.get("type") or "unknown"
        text = item.get("text")
        if kind == "text" and isinstance(text, dict) and isinstance(text.get("value"), str):
            parts.append(TextPart(value=text["value"]))
        elif kind == "text" and isinstance(text, str):
            parts.append(TextPart(value=text))
        else:
            parts.append(OtherPart(type=kind, raw=item))
    return parts
