"""Source loading for ingestion.

Handles:
- Downloading web pages
- HTML to plain text conversion
- Local text, markdown and HTML files
- YAML frontmatter stripping
- Start/end marker trimming
"""
import html
import re
from pathlib import Path
from typing import Optional, Tuple, Dict, Any

import httpx
import yaml
import structlog

from ragchat import config
from ragchat.errors import ConvertError, FetchError

logger = structlog.get_logger()

# Elements whose content never reaches the reader
_INVISIBLE_PATTERN = re.compile(
    r"<(script|style|head|noscript|template)\b[^>]*>.*?</\1\s*>",
    re.DOTALL | re.IGNORECASE,
)
_COMMENT_PATTERN = re.compile(r"<!--.*?-->", re.DOTALL)
_HEADING_PATTERN = re.compile(r"<h([1-6])\b[^>]*>", re.IGNORECASE)
_BLOCK_PATTERN = re.compile(
    r"</?(p|div|br|li|ul|ol|tr|table|section|article|header|footer|nav|"
    r"pre|blockquote|h[1-6])\b[^>]*>",
    re.IGNORECASE,
)
_TAG_PATTERN = re.compile(r"<[^>]+>")

# YAML frontmatter (must be at start of file)
FRONTMATTER_PATTERN = re.compile(r"^---\s*\n(.*?)\n---\s*\n", re.DOTALL)

HTML_SUFFIXES = {".html", ".htm"}
MARKDOWN_SUFFIXES = {".md", ".markdown"}


def is_url(source: str) -> bool:
    return source.startswith(("http://", "https://"))


def to_plain_text(markup: str) -> str:
    """Convert HTML markup to readable plain text.

    Headings keep a markdown-style ``#`` prefix; block elements become line
    breaks; entities are decoded.

    Raises:
        ConvertError: If the markup cannot be converted
    """
    if not isinstance(markup, str):
        raise ConvertError(f"Expected markup text, got {type(markup).__name__}")

    text = _COMMENT_PATTERN.sub("", markup)
    text = _INVISIBLE_PATTERN.sub("", text)
    text = _HEADING_PATTERN.sub(lambda m: "\n" + "#" * int(m.group(1)) + " ", text)
    text = _BLOCK_PATTERN.sub("\n", text)
    text = _TAG_PATTERN.sub("", text)
    text = html.unescape(text)

    # Clean whitespace, keeping paragraph breaks
    lines = (" ".join(line.split()) for line in text.splitlines())
    return "\n".join(line for line in lines if line)


def strip_frontmatter(content: str) -> Tuple[Dict[str, Any], str]:
    """Extract YAML frontmatter from markdown content.

    Args:
        content: Full markdown content

    Returns:
        Tuple of (frontmatter_dict, content_without_frontmatter)
    """
    match = FRONTMATTER_PATTERN.match(content)

    if not match:
        return {}, content

    yaml_content = match.group(1)
    try:
        frontmatter = yaml.safe_load(yaml_content) or {}
    except yaml.YAMLError as e:
        logger.warning(
            "frontmatter_parse_error",
            error=str(e),
            yaml_preview=yaml_content[:100],
        )
        frontmatter = {}

    if not isinstance(frontmatter, dict):
        frontmatter = {}

    return frontmatter, content[match.end():]


def trim_markers(text: str, start: Optional[str] = None, end: Optional[str] = None) -> str:
    """Keep the text after ``start`` and before ``end``.

    Everything following the first occurrence of ``start`` is kept (later
    occurrences are dropped from the text); the text is then cut at the
    first ``end``.

    Raises:
        ConvertError: If ``start`` does not occur in the text
    """
    if start:
        pieces = text.split(start)
        if len(pieces) < 2:
            raise ConvertError(f"Start marker not found: {start!r}")
        text = "".join(pieces[1:])
    if end:
        text = text.split(end)[0]
    return text


class SourceLoader:
    """Loads plain text from a URL or a local file."""

    def __init__(
        self,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the loader.

        Args:
            timeout: Download timeout in seconds (default from config)
            transport: Optional httpx transport, used to stub the network in tests
        """
        self.timeout = timeout or config.REQUEST_TIMEOUT
        self.transport = transport

    async def fetch(self, url: str) -> str:
        """Download a web page and return its raw markup.

        Raises:
            FetchError: On network or HTTP errors
        """
        logger.info("fetch_started", url=url)

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout,
                transport=self.transport,
                follow_redirects=True,
            ) as client:
                response = await client.get(
                    url,
                    headers={"User-Agent": "Mozilla/5.0 (compatible; ragchat/0.1)"},
                )
                response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error("fetch_failed", url=url, error=str(e))
            raise FetchError(f"Failed to fetch {url}: {e}") from e

        logger.info("fetch_completed", url=url, content_length=len(response.text))

        return response.text

    def read_file(self, path: Path) -> str:
        """Read a local source file as plain text.

        Raises:
            FetchError: If the file is missing or unreadable
            ConvertError: If an HTML file cannot be converted
        """
        try:
            content = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            logger.error("source_read_failed", path=str(path), error=str(e))
            raise FetchError(f"Failed to read {path}: {e}") from e

        suffix = path.suffix.lower()
        if suffix in HTML_SUFFIXES:
            return to_plain_text(content)
        if suffix in MARKDOWN_SUFFIXES:
            _, content = strip_frontmatter(content)
        return content

    async def load(
        self,
        source: str,
        start: Optional[str] = None,
        end: Optional[str] = None,
    ) -> str:
        """Load plain text from a URL or file path.

        Args:
            source: http(s) URL or local file path
            start: Optional marker; only text after it is kept
            end: Optional marker; only text before it is kept

        Returns:
            Plain text of the source
        """
        if is_url(source):
            text = to_plain_text(await self.fetch(source))
        else:
            text = self.read_file(Path(source))

        text = trim_markers(text, start=start, end=end)

        logger.info("source_loaded", source=source, text_length=len(text))

        return text
