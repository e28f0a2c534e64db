"""Text conversions between host display form and Nostr content.

* [html_to_markdown()][nostrbridge.utils.markup.html_to_markdown]: article
  bodies going out as kind 30023 content (html2text).
* [strip_markup()][nostrbridge.utils.markup.strip_markup]: plain text for
  kind 1 notes and titles (BeautifulSoup).
* [markdown_to_html()][nostrbridge.utils.markup.markdown_to_html]: inbound
  article content rendered for display. A small line-oriented renderer
  covering what long-form Nostr clients emit: headers, pipe tables, images,
  bare image URLs, links, autolinks, bold, italic, ``-`` lists and line
  breaks. Input text is HTML-escaped before any markup is generated and every
  attribute value is quote-escaped.
"""

from __future__ import annotations

import html
import re
from pathlib import PurePosixPath
from urllib.parse import urlparse

import html2text
from bs4 import BeautifulSoup


_BLOCK_TAGS = (
    "p", "div", "li", "ul", "ol", "h1", "h2", "h3", "h4", "h5", "h6",
    "blockquote", "pre", "tr", "table", "section", "article",
)  # fmt: skip

_SAFE_SCHEMES = frozenset({"http", "https", "mailto", ""})


# ---------------------------------------------------------------------------
# HTML -> text
# ---------------------------------------------------------------------------


def html_to_markdown(content: str) -> str:
    """Convert an HTML body to Markdown without wrapping lines."""
    if not content:
        return ""
    h = html2text.HTML2Text()
    h.unicode_snob = True
    h.body_width = 0
    h.ignore_links = False
    h.ignore_images = False
    h.inline_links = True
    text = "\n".join(line.rstrip() for line in h.handle(content).splitlines())
    return re.sub(r"\n{3,}", "\n\n", text).strip()


def strip_markup(content: str) -> str:
    """Return the visible text of *content*, one line per block element."""
    if not content:
        return ""
    soup = BeautifulSoup(content, "html.parser")
    for br in soup.find_all("br"):
        br.replace_with("\n")
    for tag in soup.find_all(_BLOCK_TAGS):
        tag.append("\n")
    lines = [line.rstrip() for line in soup.get_text().splitlines()]
    return re.sub(r"\n{3,}", "\n\n", "\n".join(lines)).strip()


# ---------------------------------------------------------------------------
# Markdown -> HTML
# ---------------------------------------------------------------------------

_HEADER_RE = re.compile(r"^(#{1,6}) (.+)$", re.MULTILINE)
_TABLE_RE = re.compile(
    r"^\|(.+)\|[ \t]*\n\|[-:| \t]+\|[ \t]*\n((?:\|.+\|[ \t]*(?:\n|$))*)", re.MULTILINE
)
_IMAGE_RE = re.compile(r"!\[([^\]]*)\]\(([^)\s]+)\)")
_BARE_IMAGE_RE = re.compile(
    r"(?<![\"'(=>])\b(https?://[^\s<>\"')]+\.(?:jpg|jpeg|png|gif|webp))\b(?![^<]*>)",
    re.IGNORECASE,
)
_LINK_RE = re.compile(r"\[([^\]]+)\]\(([^)\s]+)\)")
_AUTOLINK_RE = re.compile(r"(?<![\"'(=>])\b(https?://[^\s<>\"]*[^\s<>\".,;:!?)\]])(?![^<]*>)")
_BOLD_RE = re.compile(r"\*\*(.+?)\*\*")
_ITALIC_RE = re.compile(r"\*(.+?)\*")
_LIST_ITEM_RE = re.compile(r"^- (.+)$")
_LINE_BREAK_RE = re.compile(r"(?<!>)\n(?!<)")


def _safe_url(url: str) -> str | None:
    scheme = urlparse(html.unescape(url)).scheme.lower()
    return url if scheme in _SAFE_SCHEMES else None


def _attribute(value: str) -> str:
    """Quote-escape a value for a double-quoted attribute."""
    return html.escape(html.unescape(value), quote=True)


def _render_header(match: re.Match[str]) -> str:
    level = len(match.group(1))
    return f"<h{level}>{match.group(2).strip()}</h{level}>"


def _split_row(row: str) -> list[str]:
    return [cell.strip() for cell in row.strip().strip("|").split("|") if cell.strip()]


def _render_table(match: re.Match[str]) -> str:
    head = "".join(f"<th>{cell}</th>" for cell in _split_row(match.group(1)))
    body = "".join(
        "<tr>" + "".join(f"<td>{cell}</td>" for cell in _split_row(row)) + "</tr>"
        for row in match.group(2).splitlines()
        if row.strip()
    )
    return f"<table><thead><tr>{head}</tr></thead><tbody>{body}</tbody></table>"


def _render_image(match: re.Match[str]) -> str:
    src = _safe_url(match.group(2))
    if src is None:
        return match.group(1)
    return f'<img src="{_attribute(src)}" alt="{_attribute(match.group(1))}">'


def _render_bare_image(match: re.Match[str]) -> str:
    url = match.group(1)
    filename = PurePosixPath(urlparse(html.unescape(url)).path).name
    return f'<img src="{_attribute(url)}" alt="{_attribute(filename)}">'


def _render_link(match: re.Match[str]) -> str:
    href = _safe_url(match.group(2))
    if href is None:
        return match.group(1)
    return f'<a href="{_attribute(href)}">{match.group(1)}</a>'


def _render_autolink(match: re.Match[str]) -> str:
    url = match.group(1)
    return f'<a href="{_attribute(url)}">{url}</a>'


def _render_lists(text: str) -> str:
    lines: list[str] = []
    in_list = False
    for line in text.split("\n"):
        item = _LIST_ITEM_RE.match(line)
        if item:
            if not in_list:
                lines.append("<ul>")
                in_list = True
            lines.append(f"<li>{item.group(1)}</li>")
            continue
        if in_list:
            lines.append("</ul>")
            in_list = False
        lines.append(line)
    if in_list:
        lines.append("</ul>")
    return "\n".join(lines)


def markdown_to_html(text: str) -> str:
    """Render Markdown-ish article content as display HTML.

    Examples:
        ```python
        markdown_to_html("# Hi\\nSee **this**")
        # '<h1>Hi</h1>\\nSee <strong>this</strong>'
        ```
    """
    if not text:
        return ""
    out = html.escape(text.replace("\r\n", "\n").strip(), quote=False)
    out = _HEADER_RE.sub(_render_header, out)
    out = _TABLE_RE.sub(_render_table, out)
    out = _IMAGE_RE.sub(_render_image, out)
    out = _BARE_IMAGE_RE.sub(_render_bare_image, out)
    out = _LINK_RE.sub(_render_link, out)
    out = _AUTOLINK_RE.sub(_render_autolink, out)
    out = _BOLD_RE.sub(r"<strong>\1</strong>", out)
    out = _ITALIC_RE.sub(r"<em>\1</em>", out)
    out = _render_lists(out)
    return _LINE_BREAK_RE.sub("<br>", out)
