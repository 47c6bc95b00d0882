"""
Extraction over the portal's result-list and detail documents.

All functions here are pure: they take the HTML of an already loaded frame
and return records in document order. The walker owns navigation and
decides which frame's document is passed in.
"""

from __future__ import annotations

import re
from typing import Iterable

from lxml import html as lxml_html
from lxml.html import HtmlElement

from .base import AttachmentCandidate, Entity

# Result-list rows carry at least this many cells
MIN_ROW_CELLS = 8

CELL_RELEASE_DATE = 0
CELL_NAME = 1
CELL_ENTITY_ID = 2
CELL_SECTION = 7

DOWNLOAD_HREF_PREFIX = "javascript:download"

DETAIL_TABLE_ROWS = "table.html5TableBorder.left tr"
DETAIL_TITLE_CELL = "td.TableTitle"
DETAIL_VALUE_CELL = "td.TableTitle + td"
ATTACHMENT_ROW_TITLE = "入札公告等ファイル"
SCRIPT_LEAK_PREFIX = "var sMoney"
MASKED_VALUE = "*********"

_WHITESPACE = re.compile(r"\s")
_LINE_BREAKS = re.compile(r"[\r\n]")
_TRAILING_ANNOTATION = re.compile(r"^\s*?(\S.*\S)\s.*?$")
_INNER_SPACE = re.compile(r"(?<=\S) (?=\S)")


def _parse(html: str) -> HtmlElement:
    return lxml_html.fromstring(html or "<html></html>")


def _elements(node: HtmlElement) -> list[HtmlElement]:
    """Element children only; lxml also yields comments and processing instructions."""
    return [child for child in node if isinstance(child.tag, str)]


def strip_whitespace(text: str | None) -> str:
    """Remove every whitespace character, including full-width spaces."""
    return _WHITESPACE.sub("", text or "")


def normalize_file_name(raw: str) -> str:
    """Normalize an attachment's link text into its file name.

    Line breaks are removed, anything after the last whitespace-separated
    token that follows the name (e.g. a size annotation) is dropped, and the
    first single space between two words becomes ``+``.

        >>> normalize_file_name("資料 A\\n ")
        '資料+A'
    """
    name = _LINE_BREAKS.sub("", raw)
    name = _TRAILING_ANNOTATION.sub(r"\1", name)
    name = _INNER_SPACE.sub("+", name, count=1)
    return name.strip()


def is_eligible(file_name: str, keywords: Iterable[str]) -> bool:
    """True when any keyword occurs in the file name (case-sensitive)."""
    return any(keyword and keyword in file_name for keyword in keywords)


# =============================================================================
# Result list
# =============================================================================


def list_entities(html: str) -> list[Entity]:
    """Read entity rows from the result-list frame.

    Every ``<tr>`` with at least eight cells is a data row. Rows missing an
    id, a name or a detail link are skipped.

    Args:
        html: Document of the inner result-list frame

    Returns:
        Entities in document order
    """
    doc = _parse(html)
    entities: list[Entity] = []

    for row in doc.iter("tr"):
        cells = _elements(row)
        if len(cells) < MIN_ROW_CELLS:
            continue

        name_cell = cells[CELL_NAME]
        name_children = _elements(name_cell)
        link = name_children[0].get("href", "") if name_children else ""

        date_children = _elements(cells[CELL_RELEASE_DATE])
        is_new = bool(date_children) and date_children[0].tag.lower() == "img"

        entity_id = strip_whitespace(cells[CELL_ENTITY_ID].text_content())
        name = strip_whitespace(name_cell.text_content())

        if not (entity_id and name and link):
            continue

        entities.append(
            Entity(
                entity_id=entity_id,
                name=name,
                section_name=strip_whitespace(cells[CELL_SECTION].text_content()),
                release_date=strip_whitespace(cells[CELL_RELEASE_DATE].text_content()),
                detail_link_token=link,
                is_new=is_new,
            )
        )

    return entities


# =============================================================================
# Detail page
# =============================================================================


def list_attachments(html: str, keywords: Iterable[str]) -> list[AttachmentCandidate]:
    """Read download anchors from the detail frame.

    Args:
        html: Document of the outer content frame on a detail page
        keywords: Substrings that make an attachment eligible

    Returns:
        Attachment candidates in document order
    """
    keywords = list(keywords)
    doc = _parse(html)
    candidates: list[AttachmentCandidate] = []

    for anchor in doc.iter("a"):
        href = anchor.get("href") or ""
        if not href.startswith(DOWNLOAD_HREF_PREFIX):
            continue

        text = anchor.text_content()
        if not strip_whitespace(text):
            continue

        file_name = normalize_file_name(text)
        candidates.append(
            AttachmentCandidate(
                file_name=file_name,
                link_token=href,
                eligible=is_eligible(file_name, keywords),
            )
        )

    return candidates


def read_detail_table(html: str) -> dict[str, str]:
    """Read title/value pairs from the detail page's information table.

    The attachment row is skipped and values that leak inline script are
    masked.
    """
    doc = _parse(html)
    details: dict[str, str] = {}

    for row in doc.cssselect(DETAIL_TABLE_ROWS):
        titles = row.cssselect(DETAIL_TITLE_CELL)
        if not titles:
            continue
        title = titles[0].text_content().strip()
        if title.startswith(ATTACHMENT_ROW_TITLE):
            continue

        values = row.cssselect(DETAIL_VALUE_CELL)
        value = values[0].text_content().strip() if values else ""
        details[title] = MASKED_VALUE if value.startswith(SCRIPT_LEAK_PREFIX) else value

    return details
