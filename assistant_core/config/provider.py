"""可读写、可订阅变更的配置提供者。

上层（AssistantService / 参与者）只依赖 ConfigurationProvider 协议，
默认实现 SettingsConfigurationProvider 基于 AssistantSettings，
并可选择把修改写回 .env 文件。
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Protocol

from pydantic import ValidationError

from assistant_core.config.env_utils import set_env_value
from assistant_core.config.settings import AssistantSettings
from assistant_core.domain.exceptions import InvalidInput


# 对外使用的配置键 -> AssistantSettings 字段名
CONFIG_KEYS: Dict[str, str] = {
    "apiKey": "api_key",
    "provider": "provider",
    "alternateApiKey": "alternate_api_key",
    "alternateEndpoint": "alternate_endpoint",
    "model": "model",
    "selectedAssistantId": "selected_assistant_id",
    "sendCodeContext": "send_code_context",
}

# 这些键变化后，已缓存的会话句柄全部失效，适配器需要重建
BACKEND_KEYS = frozenset({"provider", "apiKey", "alternateApiKey", "alternateEndpoint"})


@dataclass(frozen=True)
class ConfigChange:
    key: str
    old_value: Any
    new_value: Any

    @property
    def affects_backend(self) -> bool:
        return self.key in BACKEND_KEYS


ChangeListener = Callable[[ConfigChange], None]


class ConfigurationProvider(Protocol):
    def get(self, key: str, default: Any = None) -> Any:
        ...

    def update(self, key: str, value: Any, persist: bool = False) -> None:
        ...

    def on_change(self, listener: ChangeListener) -> Callable[[], None]:
        ...

    @property
    def settings(self) -> AssistantSettings:
        ...


def _field_name(key: str) -> str:
    if key in CONFIG_KEYS:
        return CONFIG_KEYS[key]
    if key in CONFIG_KEYS.values():
        return key
    raise InvalidInput(code="UNKNOWN_CONFIG_KEY", message=f"Unknown configuration key: {key!r}")


def _public_key(key: str) -> str:
    for public, field_name in CONFIG_KEYS.items():
        if key in (public, field_name):
            return public
    return key


class SettingsConfigurationProvider:
    """基于 AssistantSettings 的配置提供者。"""

    def __init__(self, settings: Optional[AssistantSettings] = None, env_path: Optional[Path] = None):
        self._settings = settings if settings is not None else AssistantSettings()
        self._env_path = env_path
        self._listeners: List[ChangeListener] = []

    @property
    def settings(self) -> AssistantSettings:
        return self._settings

    def get(self, key: str, default: Any = None) -> Any:
        value = getattr(self._settings, _field_name(key))
        return default if value is None else value

    def update(self, key: str, value: Any, persist: bool = False) -> None:
        """修改一个配置项；值确实变化时通知所有监听者。"""

        field_name = _field_name(key)
        old_value = getattr(self._settings, field_name)
        try:
            setattr(self._settings, field_name, value)
        except ValidationError as e:
            raise InvalidInput(code="INVALID_CONFIG", message=str(e), key=key)
        new_value = getattr(self._settings, field_name)
        if persist:
            set_env_value(f"ASSISTANT_{field_name.upper()}", _env_repr(new_value), self._env_path)
        if new_value == old_value:
            return
        change = ConfigChange(key=_public_key(key), old_value=old_value, new_value=new_value)
        for listener in list(self._listeners):
            listener(change)

    def on_change(self, listener: ChangeListener) -> Callable[[], None]:
        """注册变更监听，返回取消订阅函数。"""

        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe


def _env_repr(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)
