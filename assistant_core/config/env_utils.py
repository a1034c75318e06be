"""把配置修改写回 .env 文件（ASSISTANT_ 前缀的环境变量）。"""

from pathlib import Path
from typing import List, Optional


def set_env_value(key: str, value: Optional[str], path: Optional[Path] = None) -> None:
    """在 .env 中设置（value 为 None 时删除）一个键。

    其余行（注释、空行、其他键）原样保留；键不存在时追加到末尾。
    """

    env_file = path or Path.cwd() / ".env"
    lines: List[str] = env_file.read_text(encoding="utf-8").splitlines() if env_file.exists() else []
    kept: List[str] = []
    replaced = False
    for line in lines:
        name = line.split("=", 1)[0].strip() if "=" in line and not line.lstrip().startswith("#") else None
        if name != key:
            kept.append(line)
            continue
        if value is not None and not replaced:
            kept.append(f"{key}={value}")
            replaced = True
    if value is not None and not replaced:
        kept.append(f"{key}={value}")
    env_file.parent.mkdir(parents=True, exist_ok=True)
    env_file.write_text("\n".join(kept) + "\n" if kept else "", encoding="utf-8")
