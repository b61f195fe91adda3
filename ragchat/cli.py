"""Interactive question answering over a single document.

Usage:
    ragchat https://go.dev/doc/contribute
    ragchat notes.md --window 100 --overlap 10
    ragchat --store data/chunks.json
"""
import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Awaitable, Callable, Optional

import structlog

from ragchat import config
from ragchat.errors import RagChatError
from ragchat.llm_client import PredictionGuardClient
from ragchat.rag.pipeline import RetrievalPipeline
from ragchat.rag.store import VectorStore

logger = structlog.get_logger()

USER_PROMPT = "🧑: "
BOT_PROMPT = "\n🤖: "


def configure_logging(level: str = None) -> None:
    """Configure structured logging to stderr."""
    logging.basicConfig(
        level=getattr(logging, (level or config.LOG_LEVEL).upper(), logging.WARNING),
        format="%(message)s",
        stream=sys.stderr,
    )
    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.JSONRenderer()
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
    )


async def read_stdin_line(prompt: str) -> Optional[str]:
    """Read one line from stdin without blocking the event loop; None at EOF."""
    try:
        return await asyncio.to_thread(input, prompt)
    except EOFError:
        return None


async def chat_loop(
    pipeline: RetrievalPipeline,
    store: VectorStore,
    read_line: Callable[[str], Awaitable[Optional[str]]] = read_stdin_line,
    write: Callable[[str], None] = None,
) -> int:
    """Answer questions until "exit" or end of input.

    A failed question is reported and the loop carries on with the same store.

    Returns:
        Number of questions answered
    """
    if write is None:
        def write(text: str) -> None:
            print(text, end="", flush=True)

    answered = 0
    write("\n")

    while True:
        question = await read_line(USER_PROMPT)
        if question is None or question.strip().lower() == "exit":
            break
        if not question.strip():
            continue

        write(BOT_PROMPT)
        try:
            async for fragment in pipeline.answer(question, store):
                write(fragment)
            answered += 1
        except RagChatError as e:
            logger.error("query_failed", error=str(e), error_type=type(e).__name__)
            write(f"[error: {e}]")
        write("\n\n")

    return answered


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Ask questions about a web page or local document",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("source", nargs="?", help="URL or file path to ingest")
    parser.add_argument(
        "--store",
        type=Path,
        default=None,
        help="Load a saved vector store instead of ingesting a source",
    )
    parser.add_argument(
        "--save",
        type=Path,
        default=None,
        help="Write the ingested vector store to this path",
    )
    parser.add_argument("--start", default=None, help="Keep only text after this marker")
    parser.add_argument("--end", default=None, help="Keep only text before this marker")
    parser.add_argument(
        "--window",
        type=int,
        default=config.CHUNK_WINDOW_SIZE,
        help=f"Chunk size in words (default: {config.CHUNK_WINDOW_SIZE})",
    )
    parser.add_argument(
        "--overlap",
        type=int,
        default=config.CHUNK_OVERLAP_SIZE,
        help=f"Chunk overlap in words (default: {config.CHUNK_OVERLAP_SIZE})",
    )
    parser.add_argument(
        "--batch-size",
        type=int,
        default=config.EMBED_BATCH_SIZE,
        help=f"Chunks per embedding request (default: {config.EMBED_BATCH_SIZE})",
    )
    parser.add_argument("--log-level", default=config.LOG_LEVEL, help="Logging level")
    return parser


async def run(args: argparse.Namespace) -> int:
    client = PredictionGuardClient(
        base_url=config.PREDICTIONGUARD_URL,
        api_key=config.PREDICTIONGUARD_API_KEY,
    )
    pipeline = RetrievalPipeline(
        embedder=client,
        generator=client,
        window_size=args.window,
        overlap_size=args.overlap,
        batch_size=args.batch_size,
        answer_timeout=config.ANSWER_TIMEOUT,
    )

    if args.store:
        store = VectorStore.load(args.store)
    else:
        store = await pipeline.ingest(args.source, start=args.start, end=args.end)
        if args.save:
            store.save(args.save)

    await chat_loop(pipeline, store)
    return 0


def main(argv=None) -> int:
    """Console entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.source and not args.store:
        parser.error("a source or --store is required")

    configure_logging(args.log_level)

    try:
        return asyncio.run(run(args))
    except KeyboardInterrupt:
        print("\n")
        return 1
    except (RagChatError, FileNotFoundError) as e:
        print(f"\n❌ Error: {e}\n", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
