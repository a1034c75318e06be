import json
import os
import time
from pathlib import Path
from typing import Any, Dict, Optional, Protocol
from uuid import uuid4

from assistant_core.config.settings import settings
from assistant_core.domain.exceptions import StoreError


USER_ID_KEY = "assistantsChat.userId"


class KeyValueStore(Protocol):
    def get(self, key: str, default: Any = None) -> Any:
        ...

    def set(self, key: str, value: Any) -> None:
        ...


class JsonKeyValueStore(KeyValueStore):
    """把少量持久化键值（用户 id、会话缓存等）保存到单个 JSON 文件。"""

    def __init__(self, root: str | Path | None = None, filename: str = "state.json"):
        self._root = Path(root or settings.storage_root).resolve()
        self._root.mkdir(parents=True, exist_ok=True)
        self._path = self._root / filename

    @property
    def path(self) -> Path:
        return self._path

    def get(self, key: str, default: Any = None) -> Any:
        return self._read().get(key, default)

    def set(self, key: str, value: Any) -> None:
        data = self._read()
        if value is None:
            data.pop(key, None)
        else:
            data[key] = value
        self._write(data)

    def _read(self) -> Dict[str, Any]:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except Exception as e:
            raise StoreError(code="STORE_READ_ERROR", message=str(e))
        if not isinstance(data, dict):
            raise StoreError(code="STORE_READ_ERROR", message=f"{self._path} is not a mapping")
        return data

    def _write(self, data: Dict[str, Any]) -> None:
        tmp_path = self._root / f"{self._path.stem}.{uuid4().hex}.json.tmp"
        try:
            tmp_path.write_text(json.dumps(data, ensure_ascii=False), encoding="utf-8")
            os.replace(tmp_path, self._path)
        except Exception as e:
            raise StoreError(code="STORE_WRITE_ERROR", message=str(e))


def get_or_create_user_id(store: KeyValueStore, key: str = USER_ID_KEY) -> str:
    """读取稳定的用户 id；首次使用时生成 user_<毫秒时间戳> 并持久化。"""

    user_id: Optional[str] = store.get(key)
    if not user_id:
        user_id = f"user_{int(time.time() * 1000)}"
        store.set(key, user_id)
    return user_id
