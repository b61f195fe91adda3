"""Retrieval pipeline: ingestion and grounded question answering.

Orchestrates:
- Source loading
- Text chunking
- Batched embedding generation
- Best-match retrieval
- Streaming answer generation
"""
import asyncio
from typing import AsyncIterator, Callable, Dict, List, Optional

import structlog

from ragchat import config
from ragchat.errors import EmbeddingError
from ragchat.llm_client import Embedder, Generator
from ragchat.rag.chunker import TextChunker
from ragchat.rag.similarity import best_match
from ragchat.rag.sources import SourceLoader
from ragchat.rag.store import VectorStore

FALLBACK_ANSWER = (
    "Sorry I had trouble answering this question, based on the information I found."
)

SYSTEM_PROMPT = (
    "Read the context below and answer the question. If the question cannot be "
    "answered based on the context alone or the context does not explicitly say "
    f'the answer to the question, respond "{FALLBACK_ANSWER}"'
)

_END_OF_STREAM = object()


def build_messages(context: str, question: str) -> List[Dict[str, str]]:
    """Build the grounding prompt for the generator."""
    return [
        {"role": "system", "content": SYSTEM_PROMPT},
        {
            "role": "user",
            "content": f'Context: "{context}"\n\nQuestion: "{question}"',
        },
    ]


async def bounded_stream(
    fragments: AsyncIterator[str],
    maxsize: int,
    deadline: Optional[float] = None,
    logger=None,
) -> AsyncIterator[str]:
    """Relay fragments through a bounded queue, in arrival order.

    A producer task drains ``fragments`` into the queue until the source is
    exhausted or ``deadline`` seconds pass; either way the stream simply
    ends. Errors raised by the source reach the consumer after the
    fragments received before them. Closing the consumer cancels the
    producer.
    """
    logger = logger or structlog.get_logger()
    queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)

    async def produce() -> None:
        try:
            async with asyncio.timeout(deadline):
                async for fragment in fragments:
                    await queue.put(fragment)
        except TimeoutError:
            logger.warning("answer_deadline_reached", deadline=deadline)
        except Exception as e:
            # Handed to the consumer, which re-raises it in order
            await queue.put(e)
            return
        await queue.put(_END_OF_STREAM)

    producer = asyncio.create_task(produce())
    try:
        while True:
            item = await queue.get()
            if item is _END_OF_STREAM:
                break
            if isinstance(item, Exception):
                raise item
            yield item
    finally:
        producer.cancel()


class RetrievalPipeline:
    """Ingests a document into a VectorStore and answers questions about it."""

    def __init__(
        self,
        embedder: Embedder,
        generator: Generator,
        loader: Optional[SourceLoader] = None,
        window_size: Optional[int] = None,
        overlap_size: Optional[int] = None,
        batch_size: Optional[int] = None,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
        stream_buffer_size: Optional[int] = None,
        answer_timeout: Optional[float] = None,
        logger=None,
    ):
        """Initialize the pipeline.

        Args:
            embedder: Collaborator producing embeddings
            generator: Collaborator streaming completions
            loader: Source loader (default SourceLoader())
            window_size: Chunk window in tokens (default from config)
            overlap_size: Chunk overlap in tokens (default from config)
            batch_size: Texts per embedding request (default from config)
            max_tokens: Generation limit (default from config)
            temperature: Sampling temperature (default from config)
            stream_buffer_size: Capacity of the answer channel (default from config)
            answer_timeout: Seconds before an answer stream is cut off; None disables
            logger: structlog logger receiving ingest/query lifecycle events
        """
        self.embedder = embedder
        self.generator = generator
        self.loader = loader or SourceLoader()
        self.chunker = TextChunker(window_size=window_size, overlap_size=overlap_size)
        self.batch_size = config.EMBED_BATCH_SIZE if batch_size is None else batch_size
        self.max_tokens = config.MAX_TOKENS if max_tokens is None else max_tokens
        self.temperature = config.TEMPERATURE if temperature is None else temperature
        self.stream_buffer_size = (
            config.STREAM_BUFFER_SIZE if stream_buffer_size is None else stream_buffer_size
        )
        self.answer_timeout = answer_timeout
        self.logger = logger or structlog.get_logger()

        if self.batch_size < 1:
            raise ValueError(f"Batch size must be at least 1, got {self.batch_size}")
        if self.stream_buffer_size < 1:
            raise ValueError(
                f"Stream buffer size must be at least 1, got {self.stream_buffer_size}"
            )

    async def ingest(
        self,
        source: str,
        start: Optional[str] = None,
        end: Optional[str] = None,
        progress_callback: Optional[Callable[[int, int], None]] = None,
    ) -> VectorStore:
        """Build a VectorStore from a URL or file path.

        Args:
            source: http(s) URL or local file path
            start: Optional start marker passed to the loader
            end: Optional end marker passed to the loader
            progress_callback: Optional callback(batch_number, batch_count)

        Returns:
            A fully populated VectorStore

        Raises:
            FetchError, ConvertError: If the source cannot be loaded
            EmbeddingError: If any batch fails; no partial store is returned
        """
        text = await self.loader.load(source, start=start, end=end)
        return await self.ingest_text(text, source=source, progress_callback=progress_callback)

    async def ingest_text(
        self,
        text: str,
        source: Optional[str] = None,
        progress_callback: Optional[Callable[[int, int], None]] = None,
    ) -> VectorStore:
        """Chunk and embed already loaded text into a new VectorStore."""
        chunks = self.chunker.split(text)
        batch_count = -(-len(chunks) // self.batch_size)

        self.logger.info(
            "ingest_started",
            source=source,
            chunk_count=len(chunks),
            batch_count=batch_count,
            window_size=self.chunker.window_size,
            overlap_size=self.chunker.overlap_size,
        )

        store = VectorStore()

        for batch_number, i in enumerate(range(0, len(chunks), self.batch_size), 1):
            batch = chunks[i : i + self.batch_size]
            if progress_callback:
                progress_callback(batch_number, batch_count)

            try:
                vectors = await self.embedder.embed_batch(batch)
            except EmbeddingError as e:
                self.logger.error(
                    "ingest_failed",
                    source=source,
                    batch=batch_number,
                    error=str(e),
                )
                raise

            if len(vectors) != len(batch):
                self.logger.error(
                    "ingest_failed",
                    source=source,
                    batch=batch_number,
                    error="embedding count mismatch",
                )
                raise EmbeddingError(
                    f"Embedder returned {len(vectors)} vectors for {len(batch)} texts"
                )

            for chunk_text, vector in zip(batch, vectors):
                store.add(chunk_text, vector)

        self.logger.info("ingest_completed", source=source, chunk_count=len(store))

        return store

    async def retrieve(self, query: str, store: VectorStore) -> str:
        """Embed a question and return the best-matching chunk text ("" if none)."""
        query_vector = await self.embedder.embed(query)
        match = best_match(store, query_vector)

        self.logger.debug(
            "context_retrieved",
            matched_id=match.chunk.id if match else None,
            similarity=match.similarity if match else None,
        )

        return match.chunk.text if match else ""

    async def answer(self, query: str, store: VectorStore) -> AsyncIterator[str]:
        """Answer a question from the store, yielding the answer as it streams.

        Raises:
            EmbeddingError: If the question cannot be embedded
            ZeroMagnitudeVector: If the question or a stored chunk has a zero vector
            GenerationError: If generation fails
        """
        self.logger.info("query_started", query_length=len(query), store_size=len(store))

        context = await self.retrieve(query, store)
        messages = build_messages(context, query)

        answer_length = 0
        fragments = self.generator.generate(messages, self.max_tokens, self.temperature)
        async for fragment in bounded_stream(
            fragments,
            maxsize=self.stream_buffer_size,
            deadline=self.answer_timeout,
            logger=self.logger,
        ):
            answer_length += len(fragment)
            yield fragment

        self.logger.info(
            "query_completed",
            context_found=bool(context),
            answer_length=answer_length,
        )
