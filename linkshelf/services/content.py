from __future__ import annotations

import warnings

import httpx
from bs4 import BeautifulSoup, XMLParsedAsHTMLWarning

DEFAULT_HEADERS = {
    "User-Agent": "Mozilla/5.0 (compatible; LinkShelfBot/1.0)",
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
}

TITLE_MAX_LENGTH = 200


def fetch_html(
    url: str,
    timeout: float,
    max_bytes: int,
    transport: httpx.BaseTransport | None = None,
) -> tuple[str, int]:
    with httpx.Client(
        follow_redirects=True,
        timeout=timeout,
        headers=DEFAULT_HEADERS,
        transport=transport,
    ) as client:
        with client.stream("GET", url) as response:
            status_code = response.status_code
            chunks = []
            total = 0
            for chunk in response.iter_bytes():
                total += len(chunk)
                if total > max_bytes:
                    break
                chunks.append(chunk)
            data = b"".join(chunks)
            encoding = response.encoding or "utf-8"
            return data.decode(encoding, errors="ignore"), status_code


def _looks_like_xml(html: str) -> bool:
    leading = html.lstrip()[:200].lower()
    return (
        leading.startswith("<?xml")
        or leading.startswith("<rss")
        or leading.startswith("<feed")
    )


def _build_soup(html: str) -> BeautifulSoup:
    if _looks_like_xml(html):
        return BeautifulSoup(html, "xml")
    with warnings.catch_warnings():
        warnings.filterwarnings("ignore", category=XMLParsedAsHTMLWarning)
        return BeautifulSoup(html, "lxml")


def extract_title(html: str) -> str | None:
    soup = _build_soup(html)
    if not soup.title or not soup.title.string:
        return None
    title = " ".join(soup.title.string.split())
    return title[:TITLE_MAX_LENGTH] or None


def fetch_title(
    url: str,
    timeout: float,
    max_bytes: int,
    transport: httpx.BaseTransport | None = None,
) -> str | None:
    """Best-effort page title lookup; any fetch problem yields None."""
    try:
        html, status_code = fetch_html(
            url, timeout=timeout, max_bytes=max_bytes, transport=transport
        )
    except (httpx.HTTPError, httpx.InvalidURL):
        return None
    if not 200 <= status_code < 300:
        return None
    return extract_title(html)
