"""Delivery of the final document.

Destinations:
    gs://bucket/object   Rendered to HTML and uploaded through the blob store
    local path           Markdown written to disk (parent directories created)
    empty                First lines previewed on stdout

Output is only emitted after a successful consolidation, so a failed run
never leaves a partial document behind.
"""

import html
import logging

import markdown

from tools.storage import BlobStore
from tools.utils import is_gcs_uri

logger = logging.getLogger(__name__)

MARKDOWN_CONTENT_TYPE = "text/markdown; charset=utf-8"
HTML_CONTENT_TYPE = "text/html; charset=utf-8"
DEFAULT_PREVIEW_LINES = 10

_HTML_TEMPLATE = """<!DOCTYPE html>
<html>
<head>
<meta charset="utf-8">
<meta name="viewport" content="width=device-width, initial-scale=1">
<title>{title}</title>
</head>
<body>
{body}
</body>
</html>
"""


def preview(content: str, lines: int = DEFAULT_PREVIEW_LINES) -> str:
    """Return the first N lines of content, with a marker when truncated."""
    all_lines = content.splitlines()
    head = "\n".join(all_lines[:lines])
    if len(all_lines) > lines:
        head += f"\n... ({len(all_lines) - lines} more lines)"
    return head


def render_html(content: str, title: str = "") -> str:
    """Convert a Markdown document into a standalone HTML page."""
    body = markdown.markdown(content, extensions=["extra", "sane_lists"])
    return _HTML_TEMPLATE.format(title=html.escape(title), body=body)


async def emit_document(
    content: str,
    destination: str,
    store: BlobStore,
    preview_lines: int = DEFAULT_PREVIEW_LINES,
) -> str:
    """Send the final document to its destination.

    Args:
        content: Final Markdown document
        destination: gs:// URI, local path, or '' for a stdout preview
        store: Blob store used for writes
        preview_lines: Lines shown when destination is empty

    Returns:
        Description of where the document went ('stdout' or the destination)
    """
    if not destination:
        print(preview(content, preview_lines))
        logger.info("Output previewed | lines=%d chars=%d", preview_lines, len(content))
        return "stdout"

    if is_gcs_uri(destination):
        page = render_html(content)
        await store.write_text(destination, page, content_type=HTML_CONTENT_TYPE)
        logger.info(
            "Report saved | destination=%s kind=gcs markdown_chars=%d html_chars=%d",
            destination, len(content), len(page),
        )
        return destination

    await store.write_text(destination, content, content_type=MARKDOWN_CONTENT_TYPE)
    logger.info("Report saved | destination=%s kind=local chars=%d", destination, len(content))
    return destination
