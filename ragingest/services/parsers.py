"""Upload parsing: file-type detection and text extraction.

Turns raw upload text into a :class:`ParsedDocument` the chunker can work
on.  Three formats are supported:

* **markdown** -- an optional YAML front-matter block (``---`` fenced) is
  removed from the body and returned as metadata.
* **json** -- either a structured document ``{"title", "content",
  "metadata"}`` or any other JSON value; nested objects and arrays are
  flattened into ``key: value`` lines.
* **text** -- passed through unchanged.
"""

from __future__ import annotations

import json
import re
from pathlib import PurePosixPath
from typing import Any

import structlog
import yaml

from ragingest.models.document import FileType, ParsedDocument
from ragingest.utils.errors import ProcessingError

logger = structlog.get_logger(logger_name=__name__)

_EXTENSION_TYPES: dict[str, FileType] = {
    ".md": FileType.MARKDOWN,
    ".markdown": FileType.MARKDOWN,
    ".json": FileType.JSON,
    ".txt": FileType.TEXT,
    ".text": FileType.TEXT,
}

_CONTENT_TYPES: dict[str, FileType] = {
    "text/markdown": FileType.MARKDOWN,
    "text/x-markdown": FileType.MARKDOWN,
    "application/json": FileType.JSON,
    "text/plain": FileType.TEXT,
}

_FRONT_MATTER = re.compile(r"\A---[ \t]*\r?\n(.*?)\r?\n---[ \t]*(?:\r?\n|\Z)", re.DOTALL)
_HEADER_LINE = re.compile(r"^(#{1,6})\s+(.+)$", re.MULTILINE)


def detect_file_type(filename: str, content_type: str | None = None) -> FileType | None:
    """Infer the upload format from its extension, then its declared MIME type.

    The extension wins because browsers commonly report ``.md`` files as
    ``text/plain`` or ``application/octet-stream``.

    Returns
    -------
    FileType | None
        ``None`` when neither the extension nor the content type is supported.
    """
    suffix = PurePosixPath(filename or "").suffix.lower()
    if suffix in _EXTENSION_TYPES:
        return _EXTENSION_TYPES[suffix]
    if content_type:
        mime = content_type.split(";", 1)[0].strip().lower()
        return _CONTENT_TYPES.get(mime)
    return None


def parse_document(content: str, file_type: FileType) -> ParsedDocument:
    """Extract chunkable text and metadata from *content*.

    Raises
    ------
    ProcessingError
        If a JSON upload is not valid JSON.
    """
    if file_type == FileType.MARKDOWN:
        return _parse_markdown(content)
    if file_type == FileType.JSON:
        return _parse_json(content)
    return ParsedDocument(text=content, metadata={"type": FileType.TEXT.value})


# ------------------------------------------------------------------
# Markdown
# ------------------------------------------------------------------


def _parse_markdown(content: str) -> ParsedDocument:
    front_matter: dict[str, Any] = {}
    body = content

    match = _FRONT_MATTER.match(content)
    if match:
        try:
            loaded = yaml.safe_load(match.group(1))
        except yaml.YAMLError as exc:
            # Keep the block in the body; it is still searchable text.
            logger.warning("front_matter_invalid", error=str(exc))
        else:
            if isinstance(loaded, dict):
                front_matter = {str(k): _plain(v) for k, v in loaded.items()}
                body = content[match.end():]

    headers = _HEADER_LINE.findall(body)
    metadata: dict[str, Any] = {
        "type": FileType.MARKDOWN.value,
        **front_matter,
        "header_count": len(headers),
        "max_header_level": max((len(h[0]) for h in headers), default=0),
        "word_count": len(body.split()),
    }
    return ParsedDocument(text=body.strip(), metadata=metadata)


# ------------------------------------------------------------------
# JSON
# ------------------------------------------------------------------


def _parse_json(content: str) -> ParsedDocument:
    try:
        data = json.loads(content)
    except json.JSONDecodeError as exc:
        raise ProcessingError(f"Failed to parse JSON: {exc}") from exc

    metadata: dict[str, Any] = {"type": FileType.JSON.value}

    if isinstance(data, dict) and "content" in data:
        lines: list[str] = []
        title = data.get("title")
        if isinstance(title, str) and title.strip():
            lines.append(title.strip())
            metadata["title"] = title.strip()
        lines.extend(_flatten(data["content"]))
        extra = data.get("metadata")
        if isinstance(extra, dict):
            metadata.update({str(k): _plain(v) for k, v in extra.items()})
    else:
        lines = _flatten(data)

    return ParsedDocument(text="\n".join(lines), metadata=metadata)


def _flatten(value: Any, prefix: str = "") -> list[str]:
    """Render a JSON value as ``path: value`` lines, depth first."""
    if isinstance(value, dict):
        lines: list[str] = []
        for key, child in value.items():
            path = f"{prefix}.{key}" if prefix else str(key)
            lines.extend(_flatten(child, path))
        return lines
    if isinstance(value, list):
        lines = []
        for index, child in enumerate(value):
            path = f"{prefix}[{index}]" if prefix else f"[{index}]"
            lines.extend(_flatten(child, path))
        return lines
    if value is None:
        return []
    text = value if isinstance(value, str) else json.dumps(value)
    return [f"{prefix}: {text}" if prefix else text]


def _plain(value: Any) -> Any:
    """Coerce YAML scalars (dates etc.) into JSON-friendly values."""
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    if isinstance(value, list):
        return [_plain(v) for v in value]
    if isinstance(value, dict):
        return {str(k): _plain(v) for k, v in value.items()}
    return str(value)
