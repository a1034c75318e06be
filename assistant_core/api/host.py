"""交互宿主 (Interactive Host) 协议与控制台实现。

宿主提供三种能力：单选、文本输入、流式 markdown 输出。
编辑器集成时由宿主侧实现该协议；ConsoleHost 供命令行示例与调试使用。
"""

import asyncio
import getpass
from typing import Optional, Protocol, Sequence


class InteractiveHost(Protocol):
    async def choose_one(self, prompt: str, options: Sequence[str]) -> Optional[str]:
        ...

    async def input_text(self, placeholder: str, is_secret: bool = False) -> Optional[str]:
        ...

    def emit(self, markdown: str) -> None:
        ...


class ConsoleHost:
    """基于标准输入输出的宿主实现。"""

    async def choose_one(self, prompt: str, options: Sequence[str]) -> Optional[str]:
        if not options:
            return None
        print(prompt)
        for idx, option in enumerate(options, start=1):
            print(f"  {idx}. {option}")
        raw = (await asyncio.to_thread(input, "> ")).strip()
        if raw.isdigit() and 1 <= int(raw) <= len(options):
            return options[int(raw) - 1]
        return raw if raw in options else None

    async def input_text(self, placeholder: str, is_secret: bool = False) -> Optional[str]:
        reader = getpass.getpass if is_secret else input
        raw = (await asyncio.to_thread(reader, f"{placeholder}: ")).strip()
        return raw or None

    def emit(self, markdown: str) -> None:
        print(markdown, end="" if markdown.endswith("\n") else "\n", flush=True)
