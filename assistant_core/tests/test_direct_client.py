import asyncio
import json

import httpx
import pytest

from assistant_core.agents.conversation_registry import ConversationRegistry
from assistant_core.agents.run_orchestrator import RunOrchestrator
from assistant_core.domain.exceptions import AuthenticationError, BackendUnavailable, RunFailed
from assistant_core.providers.direct_client import DirectCallClient


ASSISTANTS = [
    {"id": "asst-a", "name": "Older", "instructions": "You are terse.", "model": "gpt-4o-mini"},
    {"id": "asst-b", "name": "Newer"},
]


def _completion(content, finish_reason="stop"):
    return {
        "id": "chatcmpl-1",
        "created": 1700000000,
        "choices": [{"index": 0, "message": {"role": "assistant", "content": content}, "finish_reason": finish_reason}],
    }


def _client(handler, api_key="alt-key-1234567890", endpoint="https://alt.example.test/openai/"):
    return DirectCallClient(
        api_key=api_key,
        endpoint=endpoint,
        assistants=ASSISTANTS,
        transport=httpx.MockTransport(handler),
    )


def test_ask_through_orchestrator_completes_without_polling():
    payloads = []

    def handler(request: httpx.Request) -> httpx.Response:
        assert str(request.url) == "https://alt.example.test/openai/chat/completions"
        assert request.headers["api-key"] == "alt-key-1234567890"
        payloads.append(json.loads(request.content))
        return httpx.Response(200, json=_completion(f"answer {len(payloads)}"))

    client = _client(handler)
    orch = RunOrchestrator(client, ConversationRegistry(client), poll_interval=0)

    async def scenario():
        first = await orch.ask("asst-a", "first question", "u1")
        second = await orch.ask("asst-a", "second question", "u1")
        return first, second

    first, second = asyncio.run(scenario())
    assert first.content == "answer 1"
    assert second.content == "answer 2"
    assert payloads[0]["model"] == "gpt-4o-mini"
    assert payloads[0]["messages"][0] == {"role": "system", "content": "You are terse."}
    # 第二次请求带上了此前的对话记录
    assert [m["content"] for m in payloads[1]["messages"][1:]] == [
        "first question",
        "answer 1",
        "second question",
    ]


def test_content_filter_becomes_failed_run():
    client = _client(lambda request: httpx.Response(200, json=_completion(None, finish_reason="content_filter")))
    orch = RunOrchestrator(client, ConversationRegistry(client), poll_interval=0)
    with pytest.raises(RunFailed) as exc:
        asyncio.run(orch.ask("asst-b", "hi", "u1"))
    assert exc.value.status == "failed"
    assert "content filter" in exc.value.reason


def test_unknown_assistant_fails_without_request():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(200, json=_completion("x"))

    client = _client(handler)

    async def scenario():
        conversation_id = await client.create_conversation()
        return await client.start_job(conversation_id, "asst-missing")

    job = asyncio.run(scenario())
    assert job.status == "failed"
    assert job.error.code == "not_found"
    assert calls == []


def test_poll_returns_stored_terminal_job():
    client = _client(lambda request: httpx.Response(200, json=_completion("ok")))

    async def scenario():
        conversation_id = await client.create_conversation()
        await client.append_message(conversation_id, "user", "hi")
        job = await client.start_job(conversation_id, "asst-b")
        return job, await client.poll_job(conversation_id, job.id)

    job, polled = asyncio.run(scenario())
    assert polled == job
    with pytest.raises(BackendUnavailable):
        asyncio.run(client.poll_job("local-x", "run-unknown"))


def test_auth_error_and_missing_key():
    client = _client(lambda request: httpx.Response(401, json={"error": {"message": "Access denied"}}))
    with pytest.raises(AuthenticationError):
        asyncio.run(client.start_job("local-1", "asst-b"))

    keyless = _client(lambda request: httpx.Response(200, json=_completion("x")), api_key=None)
    with pytest.raises(AuthenticationError):
        asyncio.run(keyless.start_job("local-1", "asst-b"))


def test_assistant_directory_is_local():
    client = _client(lambda request: httpx.Response(500))

    async def scenario():
        created = await client.create_assistant("Sample", "be nice", "gpt-3.5-turbo")
        return created, await client.list_assistants(20)

    created, listed = asyncio.run(scenario())
    assert [a.id for a in listed] == [created.id, "asst-b", "asst-a"]
    assert client.supports_retrieve is False
    assert asyncio.run(client.retrieve_assistant("asst-a")) is None


def test_job_bookkeeping_stays_bounded():
    client = _client(lambda request: httpx.Response(200, json=_completion("ok")))
    orch = RunOrchestrator(client, ConversationRegistry(client), poll_interval=0)

    async def scenario():
        for i in range(10):
            await orch.ask("asst-b", f"question {i}", "u1")
        await orch.ask("asst-b", "other user", "u2")

    asyncio.run(scenario())
    assert len(client._jobs) == 2


def test_list_messages_filters_by_run():
    client = _client(lambda request: httpx.Response(200, json=_completion("ok")))

    async def scenario():
        conversation_id = await client.create_conversation()
        await client.append_message(conversation_id, "user", "hi")
        job = await client.start_job(conversation_id, "asst-b")
        return await client.list_messages(conversation_id), await client.list_messages(conversation_id, run_id=job.id)

    everything, own = asyncio.run(scenario())
    assert [m.role for m in everything] == ["user", "assistant"]
    assert [m.text() for m in own] == ["ok"]
