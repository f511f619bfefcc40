"""Plain text from files and URLs.

Size violations raise SourceTooLargeError; anything else that prevents reading
a source raises FetchError, so callers can tell the two apart.
"""

from __future__ import annotations

import asyncio
import re
from pathlib import Path

import httpx
from bs4 import BeautifulSoup

from ..errors import FetchError, SourceTooLargeError, mb
from . import pdf

USER_AGENT = "Mozilla/5.0 (compatible; conceptgraph/0.1)"
HTML_EXTS = {".html", ".htm", ".xhtml"}
_DROP_TAGS = ["script", "style", "noscript", "nav", "header", "footer"]
_WS_RE = re.compile(r"\s+")


def is_url(source: str) -> bool:
    return source.lower().startswith(("http://", "https://"))


def looks_like_html(text: str) -> bool:
    head = text[:1000].lstrip().lower()
    return head.startswith("<!doctype") or "<html" in head


def html_to_text(html: str) -> str:
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(_DROP_TAGS):
        tag.decompose()
    root = soup.body or soup
    return _WS_RE.sub(" ", root.get_text(" ")).strip()


def _too_large(source: str, size: int, limit: int) -> SourceTooLargeError:
    return SourceTooLargeError(f"Content too large: {source} is {mb(size)} (max: {mb(limit)})", size=size, limit=limit)


async def fetch_url(
    url: str,
    *,
    max_bytes: int,
    timeout_s: float = 15.0,
    transport: httpx.AsyncBaseTransport | None = None,
) -> str:
    # httpx timeouts apply per network operation; this bounds the whole fetch.
    try:
        return await asyncio.wait_for(_fetch(url, max_bytes, timeout_s, transport), timeout=timeout_s)
    except asyncio.TimeoutError as e:
        raise FetchError(f"Timed out fetching {url} after {timeout_s:g}s") from e


async def _fetch(url: str, max_bytes: int, timeout_s: float, transport: httpx.AsyncBaseTransport | None) -> str:
    buf = bytearray()
    try:
        async with httpx.AsyncClient(
            timeout=timeout_s,
            follow_redirects=True,
            headers={"User-Agent": USER_AGENT},
            transport=transport,
        ) as client:
            async with client.stream("GET", url) as r:
                if r.status_code >= 400:
                    raise FetchError(f"Failed to fetch {url}: HTTP {r.status_code}")
                try:
                    declared = int(r.headers.get("content-length") or 0)
                except ValueError as e:
                    raise FetchError(f"Failed to fetch {url}: bad Content-Length {r.headers['content-length']!r}") from e
                if declared > max_bytes:
                    raise _too_large(url, declared, max_bytes)
                async for chunk in r.aiter_bytes():
                    buf.extend(chunk)
                    if len(buf) > max_bytes:
                        raise _too_large(url, len(buf), max_bytes)
                content_type = r.headers.get("content-type", "").lower()
                encoding = r.charset_encoding or "utf-8"
    except httpx.HTTPError as e:
        raise FetchError(f"Failed to fetch {url}: {e}") from e

    try:
        text = bytes(buf).decode(encoding, errors="replace")
    except LookupError as e:
        raise FetchError(f"Failed to decode {url}: unknown charset {encoding!r}") from e
    if "html" in content_type or looks_like_html(text):
        text = html_to_text(text)
    else:
        text = text.strip()
    if not text:
        raise FetchError(f"No text content found at {url}")
    return text


def _read_file(path: Path, max_bytes: int) -> str:
    try:
        size = path.stat().st_size
    except OSError as e:
        raise FetchError(f"Cannot read {path}: {e}") from e
    if size > max_bytes:
        raise _too_large(str(path), size, max_bytes)

    ext = path.suffix.lower()
    try:
        if ext == ".pdf":
            return pdf.extract_text(path)
        text = path.read_text(encoding="utf-8", errors="replace")
    except OSError as e:
        raise FetchError(f"Cannot read {path}: {e}") from e
    except Exception as e:
        # PDF parsers raise their own exception types.
        raise FetchError(f"Cannot extract text from {path}: {e}") from e

    if ext in HTML_EXTS or looks_like_html(text):
        return html_to_text(text)
    return text


async def read_file(path: str | Path, *, max_bytes: int) -> str:
    return await asyncio.to_thread(_read_file, Path(path), int(max_bytes))


async def extract_plain_text(
    source: str,
    *,
    max_bytes: int,
    timeout_s: float = 15.0,
    transport: httpx.AsyncBaseTransport | None = None,
) -> str:
    if is_url(source):
        return await fetch_url(source, max_bytes=max_bytes, timeout_s=timeout_s, transport=transport)
    return await read_file(source, max_bytes=max_bytes)
