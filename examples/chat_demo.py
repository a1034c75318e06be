"""Console chat with the selected assistant (``/change`` and ``/clearsaved`` supported)."""

import asyncio

from assistant_core import AssistantParticipant, AssistantService
from assistant_core.api.host import ConsoleHost
from assistant_core.api.participant import setup_credentials
from assistant_core.config.provider import SettingsConfigurationProvider
from assistant_core.infrastructure.storage.json_store import JsonKeyValueStore


async def main() -> None:
    host = ConsoleHost()
    config = SettingsConfigurationProvider()
    if not config.get("apiKey") and not config.get("alternateApiKey"):
        if not await setup_credentials(host, config):
            return
    service = AssistantService(config, store=JsonKeyValueStore())
    participant = AssistantParticipant(service, host, config, persist_selection=True)
    try:
        while True:
            line = (await asyncio.to_thread(input, "You> ")).strip()
            if line.lower() in {"exit", "quit"}:
                break
            command = None
            if line.startswith("/"):
                command, _, line = line[1:].partition(" ")
            await participant.handle(line, command=command)
    finally:
        service.close()


if __name__ == "__main__":
    asyncio.run(main())
