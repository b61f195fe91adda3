"""Prediction Guard API client wrapper with error handling."""
import base64
from pathlib import Path
from typing import Any, AsyncIterator, Dict, List, Optional, Protocol

import httpx
from pydantic import BaseModel, ValidationError
import structlog

from ragchat import config
from ragchat.errors import EmbeddingError, GenerationError

logger = structlog.get_logger()


class EmbeddingItem(BaseModel):
    """A single vector in an embeddings response."""
    index: int = 0
    embedding: List[float]


class EmbeddingResponse(BaseModel):
    """Body of POST /embeddings."""
    data: List[EmbeddingItem] = []


class StreamDelta(BaseModel):
    content: Optional[str] = None


class StreamChoice(BaseModel):
    delta: Optional[StreamDelta] = None


class ChatStreamEvent(BaseModel):
    """One server-sent event of a streamed chat completion."""
    choices: List[StreamChoice] = []
    error: Optional[Any] = None


class Embedder(Protocol):
    """Turns text into vectors."""

    async def embed(self, text: str, image: Optional[str] = None) -> List[float]: ...

    async def embed_batch(self, texts: List[str]) -> List[List[float]]: ...


class Generator(Protocol):
    """Streams a chat completion as text fragments."""

    def generate(
        self,
        messages: List[Dict[str, str]],
        max_tokens: int,
        temperature: float,
    ) -> AsyncIterator[str]: ...


class PredictionGuardClient:
    """Async client for the Prediction Guard embeddings and chat APIs."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        chat_model: Optional[str] = None,
        embedding_model: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the client.

        Args:
            base_url: API base URL (defaults to config.PREDICTIONGUARD_URL)
            api_key: API key sent as a bearer token (defaults to config.PREDICTIONGUARD_API_KEY)
            chat_model: Completion model (defaults to config.CHAT_MODEL)
            embedding_model: Embedding model (defaults to config.EMBEDDING_MODEL)
            timeout: Request timeout in seconds
            transport: Optional httpx transport, used to stub the network in tests
        """
        self.base_url = (base_url or config.PREDICTIONGUARD_URL).rstrip("/")
        self.api_key = config.PREDICTIONGUARD_API_KEY if api_key is None else api_key
        self.chat_model = chat_model or config.CHAT_MODEL
        self.embedding_model = embedding_model or config.EMBEDDING_MODEL
        self.timeout = timeout or config.REQUEST_TIMEOUT
        self.transport = transport

    def _client(self) -> httpx.AsyncClient:
        headers = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else {}
        return httpx.AsyncClient(
            timeout=self.timeout,
            headers=headers,
            transport=self.transport,
            follow_redirects=True,
        )

    async def _encode_image(self, client: httpx.AsyncClient, image: str) -> str:
        """Load an image from a URL or local path as base64."""
        if image.startswith(("http://", "https://")):
            response = await client.get(image)
            response.raise_for_status()
            data = response.content
        else:
            data = Path(image).read_bytes()
        return base64.b64encode(data).decode("ascii")

    async def _embed_inputs(self, inputs: List[Dict[str, str]]) -> List[List[float]]:
        payload = {
            "model": self.embedding_model,
            "input": inputs,
        }

        try:
            async with self._client() as client:
                logger.debug(
                    "embedding_request",
                    model=self.embedding_model,
                    input_count=len(inputs),
                )

                response = await client.post(f"{self.base_url}/embeddings", json=payload)
                response.raise_for_status()
                body = EmbeddingResponse.model_validate_json(response.content)

        except httpx.HTTPError as e:
            logger.error(
                "embedding_http_error",
                error=str(e),
                status_code=getattr(getattr(e, "response", None), "status_code", None),
            )
            raise EmbeddingError(f"Embedding request failed: {e}") from e
        except ValidationError as e:
            logger.error("embedding_bad_response", error_count=e.error_count())
            raise EmbeddingError(f"Malformed embedding response: {e}") from e

        items = sorted(body.data, key=lambda item: item.index)
        embeddings = [item.embedding for item in items]

        if len(embeddings) != len(inputs) or not all(embeddings):
            raise EmbeddingError(
                f"Expected {len(inputs)} embeddings, got {len([e for e in embeddings if e])}"
            )

        logger.debug(
            "embedding_response",
            model=self.embedding_model,
            dimension=len(embeddings[0]),
        )

        return embeddings

    async def embed(self, text: str, image: Optional[str] = None) -> List[float]:
        """Embed a single text, optionally together with an image.

        Args:
            text: Text to embed
            image: Optional image URL or local file path

        Returns:
            Embedding vector

        Raises:
            EmbeddingError: On transport or model errors
        """
        item = {"text": text}

        if image:
            try:
                async with self._client() as client:
                    item["image"] = await self._encode_image(client, image)
            except (httpx.HTTPError, OSError) as e:
                logger.error("embedding_image_load_failed", image=image, error=str(e))
                raise EmbeddingError(f"Failed to load image {image}: {e}") from e

        embeddings = await self._embed_inputs([item])
        return embeddings[0]

    async def embed_batch(self, texts: List[str]) -> List[List[float]]:
        """Embed several texts in one request, preserving order.

        Raises:
            EmbeddingError: On transport or model errors
        """
        if not texts:
            return []
        return await self._embed_inputs([{"text": text} for text in texts])

    async def generate(
        self,
        messages: List[Dict[str, str]],
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
    ) -> AsyncIterator[str]:
        """Stream a chat completion as text fragments.

        The stream ends at the ``[DONE]`` event, or quietly when the server
        closes the connection early.

        Args:
            messages: List of message dicts with 'role' and 'content'
            max_tokens: Maximum tokens to generate (defaults to config.MAX_TOKENS)
            temperature: Sampling temperature (defaults to config.TEMPERATURE)

        Yields:
            Content fragments in arrival order

        Raises:
            GenerationError: On transport or model errors
        """
        payload = {
            "model": self.chat_model,
            "messages": messages,
            "max_tokens": config.MAX_TOKENS if max_tokens is None else max_tokens,
            "temperature": config.TEMPERATURE if temperature is None else temperature,
            "stream": True,
        }

        logger.info(
            "chat_stream_request",
            model=self.chat_model,
            message_count=len(messages),
        )

        fragment_count = 0

        try:
            async with self._client() as client:
                async with client.stream(
                    "POST", f"{self.base_url}/chat/completions", json=payload
                ) as response:
                    response.raise_for_status()

                    async for line in response.aiter_lines():
                        if not line.startswith("data:"):
                            continue

                        data = line[len("data:"):].strip()
                        if not data:
                            continue
                        if data == "[DONE]":
                            break

                        event = ChatStreamEvent.model_validate_json(data)
                        if event.error:
                            raise GenerationError(f"Generation failed: {event.error}")

                        for choice in event.choices:
                            content = choice.delta.content if choice.delta else None
                            if content:
                                fragment_count += 1
                                yield content

        except httpx.RemoteProtocolError as e:
            logger.warning("chat_stream_closed_early", error=str(e), fragments=fragment_count)
        except httpx.HTTPError as e:
            logger.error(
                "chat_http_error",
                error=str(e),
                status_code=getattr(getattr(e, "response", None), "status_code", None),
            )
            raise GenerationError(f"Chat request failed: {e}") from e
        except ValidationError as e:
            logger.error("chat_bad_event", error_count=e.error_count())
            raise GenerationError(f"Malformed stream event: {e}") from e

        logger.info("chat_stream_completed", model=self.chat_model, fragments=fragment_count)
