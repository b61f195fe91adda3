"""Tests for the Prediction Guard client against a mocked transport."""
import base64
import json

import httpx
import pytest

from ragchat.errors import EmbeddingError, GenerationError
from ragchat.llm_client import PredictionGuardClient

BASE_URL = "https://pg.test"


def make_client(handler) -> PredictionGuardClient:
    return PredictionGuardClient(
        base_url=BASE_URL,
        api_key="secret",
        chat_model="chat-model",
        embedding_model="embed-model",
        transport=httpx.MockTransport(handler),
    )


def sse(*events) -> bytes:
    lines = []
    for event in events:
        payload = event if isinstance(event, str) else json.dumps(event)
        lines.append(f"data: {payload}\n\n")
    return "".join(lines).encode()


def delta(content):
    return {"choices": [{"index": 0, "delta": {"content": content}}]}


@pytest.mark.asyncio
async def test_embed_batch_sends_texts_and_orders_by_index():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["auth"] = request.headers.get("authorization")
        seen["body"] = json.loads(request.content)
        return httpx.Response(
            200,
            json={
                "data": [
                    {"index": 1, "embedding": [0.0, 1.0]},
                    {"index": 0, "embedding": [1.0, 0.0]},
                ]
            },
        )

    vectors = await make_client(handler).embed_batch(["first", "second"])

    assert vectors == [[1.0, 0.0], [0.0, 1.0]]
    assert seen["url"] == f"{BASE_URL}/embeddings"
    assert seen["auth"] == "Bearer secret"
    assert seen["body"] == {
        "model": "embed-model",
        "input": [{"text": "first"}, {"text": "second"}],
    }


@pytest.mark.asyncio
async def test_embed_batch_empty_input_makes_no_request():
    def handler(request):
        raise AssertionError("no request expected")

    assert await make_client(handler).embed_batch([]) == []


@pytest.mark.asyncio
async def test_embed_with_local_image_sends_base64(tmp_path):
    image = tmp_path / "gopher.png"
    image.write_bytes(b"\x89PNG fake")
    seen = {}

    def handler(request):
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"data": [{"index": 0, "embedding": [0.5]}]})

    vector = await make_client(handler).embed("a gopher", image=str(image))

    assert vector == [0.5]
    assert seen["body"]["input"] == [
        {"text": "a gopher", "image": base64.b64encode(b"\x89PNG fake").decode()}
    ]


@pytest.mark.asyncio
async def test_embed_missing_image_raises_embedding_error(tmp_path):
    client = make_client(lambda r: httpx.Response(200, json={"data": []}))

    with pytest.raises(EmbeddingError):
        await client.embed("text", image=str(tmp_path / "missing.png"))


@pytest.mark.asyncio
async def test_embed_http_error_raises_embedding_error():
    client = make_client(lambda r: httpx.Response(500, json={"error": "boom"}))

    with pytest.raises(EmbeddingError):
        await client.embed("text")


@pytest.mark.asyncio
async def test_embed_missing_vectors_raises_embedding_error():
    client = make_client(lambda r: httpx.Response(200, json={"data": []}))

    with pytest.raises(EmbeddingError):
        await client.embed_batch(["a", "b"])


@pytest.mark.asyncio
async def test_generate_streams_fragments_until_done():
    seen = {}

    def handler(request):
        seen["url"] = str(request.url)
        seen["body"] = json.loads(request.content)
        body = sse(delta("Hello"), delta(", "), {"choices": [{"delta": {}}]}, delta("world"), "[DONE]")
        return httpx.Response(200, content=body, headers={"content-type": "text/event-stream"})

    messages = [{"role": "user", "content": "hi"}]
    fragments = [f async for f in make_client(handler).generate(messages, 50, 0.2)]

    assert fragments == ["Hello", ", ", "world"]
    assert seen["url"] == f"{BASE_URL}/chat/completions"
    assert seen["body"] == {
        "model": "chat-model",
        "messages": messages,
        "max_tokens": 50,
        "temperature": 0.2,
        "stream": True,
    }


@pytest.mark.asyncio
async def test_generate_ignores_events_after_done():
    def handler(request):
        return httpx.Response(200, content=sse(delta("a"), "[DONE]", delta("b")))

    fragments = [f async for f in make_client(handler).generate([], 10, 0.0)]

    assert fragments == ["a"]


@pytest.mark.asyncio
async def test_generate_stream_without_done_ends_normally():
    def handler(request):
        return httpx.Response(200, content=sse(delta("cut "), delta("short")))

    fragments = [f async for f in make_client(handler).generate([], 10, 0.0)]

    assert fragments == ["cut ", "short"]


@pytest.mark.asyncio
async def test_generate_http_error_raises_generation_error():
    client = make_client(lambda r: httpx.Response(401, json={"error": "bad key"}))

    with pytest.raises(GenerationError):
        [f async for f in client.generate([], 10, 0.0)]


@pytest.mark.asyncio
async def test_generate_error_event_raises_generation_error():
    def handler(request):
        return httpx.Response(200, content=sse({"error": "model overloaded"}))

    with pytest.raises(GenerationError):
        [f async for f in make_client(handler).generate([], 10, 0.0)]


@pytest.mark.asyncio
async def test_generate_malformed_event_raises_generation_error():
    def handler(request):
        return httpx.Response(200, content=b"data: {not json\n\n")

    with pytest.raises(GenerationError):
        [f async for f in make_client(handler).generate([], 10, 0.0)]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "body",
    [
        {"data": ["oops"]},
        {"data": [{"index": 0, "embedding": ["x"]}]},
        {"data": None},
        ["not", "an", "object"],
    ],
)
async def test_embed_malformed_response_raises_embedding_error(body):
    client = make_client(lambda r: httpx.Response(200, json=body))

    with pytest.raises(EmbeddingError):
        await client.embed("text")


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "event",
    [
        {"choices": None},
        {"choices": [{"delta": "text"}]},
        {"choices": [{"delta": {"content": 5}}]},
        5,
        ["list"],
    ],
)
async def test_generate_unexpected_event_shape_raises_generation_error(event):
    def handler(request):
        return httpx.Response(200, content=sse(delta("ok "), event))

    with pytest.raises(GenerationError):
        [f async for f in make_client(handler).generate([], 10, 0.0)]


class CutOffStream(httpx.AsyncByteStream):
    """Response body that drops the connection after one event."""

    async def __aiter__(self):
        yield sse(delta("part"))
        raise httpx.RemoteProtocolError(
            "peer closed connection without sending complete message body"
        )


@pytest.mark.asyncio
async def test_generate_connection_closed_early_ends_answer():
    def handler(request):
        return httpx.Response(
            200, stream=CutOffStream(), headers={"content-type": "text/event-stream"}
        )

    fragments = [f async for f in make_client(handler).generate([], 10, 0.0)]

    assert fragments == ["part"]
