#!/usr/bin/env python
"""Embed a web page or document into a vector store snapshot.

Usage:
    python scripts/build_store.py https://go.dev/doc/contribute
    python scripts/build_store.py notes.md --output data/notes.json
    python scripts/build_store.py https://go.dev/doc/contribute --start "# Contribution Guide"
"""
import argparse
import asyncio
import sys
from pathlib import Path
from datetime import datetime

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from ragchat import config
from ragchat.cli import configure_logging
from ragchat.errors import RagChatError
from ragchat.llm_client import PredictionGuardClient
from ragchat.rag.pipeline import RetrievalPipeline
import structlog

logger = structlog.get_logger()


class ProgressReporter:
    """Simple progress reporter for CLI."""

    def __init__(self):
        self.start_time = None

    def start(self, message: str):
        """Start progress reporting."""
        self.start_time = datetime.now()
        print(f"\n{'=' * 60}")
        print(f"  {message}")
        print(f"{'=' * 60}\n")

    def update(self, current: int, total: int):
        """Update progress."""
        percentage = (current / total) * 100 if total > 0 else 0
        bar_length = 40
        filled = int(bar_length * current / total) if total > 0 else 0
        bar = "█" * filled + "░" * (bar_length - filled)

        print(
            f"\r  [{bar}] {percentage:5.1f}% (batch {current}/{total})",
            end="",
            flush=True,
        )

    def finish(self, chunk_count: int, output: Path):
        """Finish progress reporting."""
        print("\n")
        elapsed_seconds = (datetime.now() - self.start_time).total_seconds()

        print(f"{'=' * 60}")
        print(f"  Embedding Complete!")
        print(f"{'=' * 60}\n")
        print(f"  📝 Chunks embedded: {chunk_count}")
        print(f"  ⏱️  Time elapsed:    {elapsed_seconds:.1f}s")
        print(f"\n✅ Store written to: {output}\n")


async def main():
    """Main entry point for the store builder."""
    parser = argparse.ArgumentParser(
        description="Embed a source into a vector store snapshot",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("source", help="URL or file path to ingest")
    parser.add_argument(
        "--output",
        "-o",
        type=Path,
        default=config.STORE_PATH,
        help=f"Snapshot path (default: {config.STORE_PATH})",
    )
    parser.add_argument("--start", default=None, help="Keep only text after this marker")
    parser.add_argument("--end", default=None, help="Keep only text before this marker")
    parser.add_argument("--window", type=int, default=config.CHUNK_WINDOW_SIZE)
    parser.add_argument("--overlap", type=int, default=config.CHUNK_OVERLAP_SIZE)

    args = parser.parse_args()
    configure_logging()

    progress = ProgressReporter()

    try:
        print("\n📋 Configuration:")
        print(f"   Source:           {args.source}")
        print(f"   Embedding model:  {config.EMBEDDING_MODEL}")
        print(f"   Chunk window:     {args.window} words")
        print(f"   Chunk overlap:    {args.overlap} words")
        print(f"   Batch size:       {config.EMBED_BATCH_SIZE}")

        client = PredictionGuardClient(
            base_url=config.PREDICTIONGUARD_URL,
            api_key=config.PREDICTIONGUARD_API_KEY,
        )
        pipeline = RetrievalPipeline(
            embedder=client,
            generator=client,
            window_size=args.window,
            overlap_size=args.overlap,
        )

        progress.start("Embedding Source")

        store = await pipeline.ingest(
            args.source,
            start=args.start,
            end=args.end,
            progress_callback=progress.update,
        )

        # Only a complete store is written
        store.save(args.output)

        progress.finish(len(store), args.output)

    except KeyboardInterrupt:
        print("\n\n⚠️  Embedding cancelled by user.\n")
        sys.exit(1)

    except RagChatError as e:
        print(f"\n❌ Error: {e}\n")
        logger.error("build_store_failed", error=str(e), error_type=type(e).__name__)
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
