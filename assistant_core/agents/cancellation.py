"""可注入的取消信号。

Orchestrator 在每次轮询迭代的边界（sleep 之前、发起 poll 之前）检查该信号；
sleep 期间被取消会立即唤醒。取消只影响本地等待，远端 run 继续执行。
"""

import asyncio


class CancellationToken:
    def __init__(self) -> None:
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        await self._event.wait()

    async def sleep(self, seconds: float) -> bool:
        """等待 seconds 秒；期间被取消则提前返回。返回值表示是否已取消。"""

        if seconds <= 0:
            await asyncio.sleep(0)
            return self.cancelled
        try:
            await asyncio.wait_for(self._event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return False
        return True
