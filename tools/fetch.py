"""Web page fetching and text extraction.

WebExtractor is the concrete Fetcher used by the pipeline. It downloads a
page with a shared aiohttp session and extracts readable text.

Features:
    - Low-level HTTP retries with exponential backoff (5xx, 429, timeouts,
      connection errors)
    - SSL fallback for problematic certificates
    - Manual gzip / deflate / brotli decoding
    - HTML-to-text conversion that keeps paragraph breaks and prefers
      <article> / <main> content when the page has it
"""

import asyncio
import gzip
import logging
import re
import zlib
from html.parser import HTMLParser
from io import StringIO

import aiohttp
import brotli

from tools.utils import create_ssl_context, USER_AGENT

logger = logging.getLogger(__name__)

PARAGRAPH_BREAK = "\n\n"


class _HTMLTextExtractor(HTMLParser):
    """Extract readable text from HTML, skipping non-content tags.

    Block-level tags emit a paragraph break so the segmenter can cut on
    them later. Text inside <article> or <main> is also collected
    separately and preferred over the whole page.

    Usage:
        >>> parser = _HTMLTextExtractor()
        >>> parser.feed("<p>Hello <script>ignored</script> world</p><p>Next</p>")
        >>> _normalize(parser.get_text())
        'Hello world\\n\\nNext'
    """

    # Tags whose content should be completely ignored
    SKIP_TAGS = frozenset({
        "script", "style", "head", "meta", "link", "noscript", "template",
        "svg", "iframe", "nav", "footer", "form",
    })
    BLOCK_TAGS = frozenset({
        "p", "div", "section", "article", "main", "header", "aside", "br",
        "li", "ul", "ol", "table", "tr", "blockquote", "pre", "hr",
        "h1", "h2", "h3", "h4", "h5", "h6", "dd", "dt", "figcaption",
    })
    MAIN_TAGS = frozenset({"article", "main"})

    def __init__(self):
        super().__init__()
        self._buffer = StringIO()
        self._main_buffer = StringIO()
        self._skip_depth = 0  # Nesting depth within skip tags
        self._main_depth = 0  # Nesting depth within article/main

    def handle_starttag(self, tag, attrs):
        if tag in self.SKIP_TAGS:
            self._skip_depth += 1
        if tag in self.MAIN_TAGS:
            self._main_depth += 1
        if tag in self.BLOCK_TAGS:
            self._write(PARAGRAPH_BREAK)

    def handle_endtag(self, tag):
        if tag in self.SKIP_TAGS and self._skip_depth > 0:
            self._skip_depth -= 1
        if tag in self.BLOCK_TAGS:
            self._write(PARAGRAPH_BREAK)
        if tag in self.MAIN_TAGS and self._main_depth > 0:
            self._main_depth -= 1

    def handle_data(self, data):
        # Only capture text when not inside a skip tag
        if self._skip_depth == 0:
            self._write(data)

    def _write(self, data: str) -> None:
        self._buffer.write(data)
        if self._main_depth > 0:
            self._main_buffer.write(data)

    def get_text(self) -> str:
        """Return article/main text when present, otherwise all text."""
        main = self._main_buffer.getvalue()
        if main.strip():
            return main
        return self._buffer.getvalue()


def _normalize(text: str) -> str:
    """Collapse whitespace inside paragraphs and keep one blank line between them."""
    paragraphs = []
    for block in re.split(r"\n\s*\n", text):
        line = re.sub(r"\s+", " ", block).strip()
        if line:
            paragraphs.append(line)
    return PARAGRAPH_BREAK.join(paragraphs)


def extract_text(html: str) -> str:
    """Extract readable text from HTML."""
    parser = _HTMLTextExtractor()
    try:
        parser.feed(html)
        parser.close()
        text = parser.get_text()
    except Exception:
        # Fallback: strip tags with regex
        text = re.sub(r"<[^>]+>", " ", html)
    return _normalize(text)


def decode_body(body: bytes, content_encoding: str, charset: str | None) -> str:
    """Undo Content-Encoding layers and decode to text."""
    encodings = [enc.strip().lower() for enc in content_encoding.split(",") if enc.strip()]
    for encoding in reversed(encodings):
        if encoding == "br":
            body = brotli.decompress(body)
        elif encoding in ("gzip", "x-gzip"):
            body = gzip.decompress(body)
        elif encoding == "deflate":
            try:
                body = zlib.decompress(body)
            except zlib.error:
                body = zlib.decompress(body, -zlib.MAX_WBITS)
        elif encoding == "identity":
            continue
        else:
            raise RuntimeError(f"Unsupported content encoding: {encoding}")
    return body.decode(charset or "utf-8", errors="replace")


def _is_retryable(error: BaseException) -> bool:
    if isinstance(error, aiohttp.ClientResponseError):
        return error.status >= 500 or error.status == 429
    return isinstance(error, (aiohttp.ClientConnectionError, asyncio.TimeoutError))


class WebExtractor:
    """Fetcher that downloads web pages and returns their readable text.

    Usage:
        >>> async with WebExtractor(timeout=15) as extractor:
        ...     content, found = await extractor.fetch("https://example.com")
    """

    def __init__(
        self,
        timeout: float = 15.0,
        max_retries: int = 2,
        retry_base_delay: float = 1.0,
        max_connections: int = 10,
    ):
        """Initialize the extractor.

        Args:
            timeout: Total timeout per HTTP request in seconds
            max_retries: Extra attempts for retryable failures
            retry_base_delay: First backoff delay, doubled per attempt
            max_connections: Connection pool size
        """
        self.timeout = timeout
        self.max_retries = max(0, max_retries)
        self.retry_base_delay = retry_base_delay
        self.max_connections = max_connections
        self._session: aiohttp.ClientSession | None = None

    async def __aenter__(self) -> "WebExtractor":
        self._get_session()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            connector = aiohttp.TCPConnector(limit=self.max_connections)
            self._session = aiohttp.ClientSession(connector=connector, auto_decompress=False)
        return self._session

    async def close(self) -> None:
        """Close the shared HTTP session."""
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    async def _download(self, url: str, verify: bool) -> tuple[str, str]:
        async with self._get_session().get(
            url,
            timeout=aiohttp.ClientTimeout(total=self.timeout),
            headers={"User-Agent": USER_AGENT, "Accept-Encoding": "gzip, deflate, br"},
            ssl=create_ssl_context(verify),
        ) as resp:
            if resp.status != 200:
                raise aiohttp.ClientResponseError(
                    resp.request_info, resp.history, status=resp.status
                )
            raw = await resp.read()
            body = decode_body(raw, resp.headers.get("Content-Encoding", ""), resp.charset)
            return body, resp.content_type or ""

    async def _download_with_fallback(self, url: str) -> tuple[str, str]:
        try:
            return await self._download(url, verify=True)
        except aiohttp.ClientSSLError:
            logger.debug("SSL error, retrying without verification: %s", url)
            return await self._download(url, verify=False)

    async def fetch(self, source_id: str) -> tuple[str, bool]:
        """Download a page and extract its text.

        Args:
            source_id: Page URL

        Returns:
            (text, found) where found is False when no body text was extracted

        Raises:
            aiohttp.ClientError, asyncio.TimeoutError: After retries are exhausted
        """
        attempt = 0
        while True:
            try:
                body, content_type = await self._download_with_fallback(source_id)
                break
            except Exception as e:
                if attempt >= self.max_retries or not _is_retryable(e):
                    raise
                delay = self.retry_base_delay * (2 ** attempt)
                attempt += 1
                logger.debug(
                    "HTTP retry | url=%s attempt=%d delay=%.1fs error=%s type=%s",
                    source_id, attempt, delay, e, type(e).__name__,
                )
                await asyncio.sleep(delay)

        if content_type.startswith("text/plain"):
            text = body.strip()
        else:
            text = extract_text(body)
        return text, bool(text)
