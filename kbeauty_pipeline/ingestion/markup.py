"""
Markup Extraction Module
========================

BeautifulSoup helpers shared by the source adapters.

Adapters extract fields in layers: structural CSS selectors first, then
JSON-LD blocks, then regular expressions over the page text. The first
plausible non-empty result wins.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Callable, Iterable, Iterator
from typing import Any, TypeVar

from bs4 import BeautifulSoup, Tag

logger = logging.getLogger(__name__)

T = TypeVar("T")

PRICE_PATTERN = re.compile(r"(\d[\d,]*(?:\.\d+)?)")


def parse_html(html: str) -> BeautifulSoup:
    """Parse an HTML document with the lxml parser."""
    return BeautifulSoup(html, "lxml")


def clean_text(value: str | None) -> str:
    """Collapse runs of whitespace and strip."""
    if not value:
        return ""
    return re.sub(r"\s+", " ", value).strip()


def node_text(node: Tag | None) -> str:
    """Whitespace-normalized text content of a node, or empty string."""
    if node is None:
        return ""
    return clean_text(node.get_text(" "))


def first_text(root: BeautifulSoup | Tag, selectors: Iterable[str]) -> str:
    """Text of the first selector that matches a node with non-empty text."""
    for selector in selectors:
        for node in root.select(selector):
            text = node_text(node)
            if text:
                return text
    return ""


def meta_content(soup: BeautifulSoup, prop: str) -> str:
    """Content of a <meta property=...> or <meta name=...> tag."""
    tag = soup.find("meta", attrs={"property": prop}) or soup.find("meta", attrs={"name": prop})
    if isinstance(tag, Tag):
        return clean_text(str(tag.get("content") or ""))
    return ""


def page_text(soup: BeautifulSoup) -> str:
    """Visible page text with one line per block, for regex fallbacks."""
    for tag in soup(["script", "style", "noscript"]):
        tag.decompose()
    return soup.get_text("\n")


def iter_jsonld(soup: BeautifulSoup) -> Iterator[dict[str, Any]]:
    """Yield every JSON-LD object on the page, flattening arrays and @graph."""
    for tag in soup.find_all("script", attrs={"type": "application/ld+json"}):
        text = tag.string or tag.get_text()
        if not text or not text.strip():
            continue
        try:
            data = json.loads(text)
        except (json.JSONDecodeError, TypeError):
            logger.debug("Skipping malformed JSON-LD block")
            continue

        entries = data if isinstance(data, list) else [data]
        for entry in entries:
            if not isinstance(entry, dict):
                continue
            graph = entry.get("@graph")
            if isinstance(graph, list):
                yield from (g for g in graph if isinstance(g, dict))
            else:
                yield entry


def jsonld_products(soup: BeautifulSoup) -> list[dict[str, Any]]:
    """JSON-LD objects whose @type is Product."""
    products = []
    for entry in iter_jsonld(soup):
        types = entry.get("@type")
        if types == "Product" or (isinstance(types, list) and "Product" in types):
            products.append(entry)
    return products


def parse_price(text: str | None) -> float | None:
    """
    Parse a positive price from display text like "US$ 25.00" or "$1,299.99".

    Returns the value rounded to cents, or None if nothing parses.
    """
    if text is None:
        return None
    if isinstance(text, (int, float)):
        value = float(text)
    else:
        match = PRICE_PATTERN.search(str(text))
        if not match:
            return None
        try:
            value = float(match.group(1).replace(",", ""))
        except ValueError:
            return None
    if value <= 0:
        return None
    return round(value, 2)


def absolute_url(href: str | None, base_url: str) -> str | None:
    """Make a link absolute. Protocol-relative links become https."""
    if not href:
        return None
    href = href.strip()
    if href.startswith("//"):
        return "https:" + href
    if href.startswith("http://") or href.startswith("https://"):
        return href
    if not href.startswith("/"):
        href = "/" + href
    return base_url.rstrip("/") + href


def first_plausible(
    *strategies: Callable[[], T | None],
    accept: Callable[[T], bool] = bool,
) -> T | None:
    """
    Run extraction strategies in order and return the first accepted result.

    Args:
        strategies: Zero-argument callables, most reliable first
        accept: Plausibility check applied to each non-None result

    Returns:
        The first accepted value, or None
    """
    for strategy in strategies:
        value = strategy()
        if value is not None and accept(value):
            return value
    return None
