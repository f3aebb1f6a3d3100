"""
Content Sanitizer
=================
Turns an inline-HTML string from exam content into a well-formed exam XML
fragment.

Rewrite order (each step consumes the previous step's output):
    1. Legacy <img>/<a> markup → image / attachment-link elements
    2. HTML entity decoding via an HTML fragment parse, trim, newlines → <br/>
    3. Bare image/video/audio/attachment-link tags → e: namespace
    4. attachment-link refs → cross-reference hashes
    5. Percent-decoding of image sources
    6. \\(...\\) and \\[...\\] → e:formula
    7. Strict XML parse; the wrapper's children are the fragment

Formulas are matched lexically, so steps 3-6 run on the serialized markup
between the HTML decode and the strict parse.
"""

from __future__ import annotations

import re
from typing import Union
from urllib.parse import unquote
from xml.sax.saxutils import escape, unescape

import lxml.html
from lxml import etree

from .attachments import cross_reference_hash
from .namespaces import EXAM_NS, XHTML_NS

Fragment = list[Union[str, etree._Element]]

# ─── Patterns ─────────────────────────────────────────────────────────────────

# <img src="kuva.png">Kuvateksti</img>
LEGACY_CAPTIONED_IMG_PATTERN = re.compile(
    r'<img\s+src="([^"]+)"\s*>(.*?)</img>', re.IGNORECASE | re.DOTALL
)

# <img src="kuva.png"> or <img src="kuva.png" alt="" />
LEGACY_IMG_PATTERN = re.compile(
    r'<img\s+src="([^"]+)"[^>]*>', re.IGNORECASE
)

# <a href="/attachments/liite.pdf">Liite</a>
LEGACY_ANCHOR_PATTERN = re.compile(
    r'<a\b[^>]*?\shref="([^"]+)"[^>]*>(.*?)</a>', re.IGNORECASE | re.DOTALL
)

# <image src="x"/>; the HTML parser would otherwise nest trailing content
SELF_CLOSED_MEDIA_PATTERN = re.compile(
    r"<(image|video|audio|attachment-link)\b([^>]*?)\s*/>", re.IGNORECASE
)

ATTACHMENTS_PREFIX_PATTERN = re.compile(r".*attachments/", re.IGNORECASE)

MEDIA_TAG_PATTERN = re.compile(
    r"<(/?)(image|video|audio|attachment-link)\b", re.IGNORECASE
)

ATTACHMENT_REF_PATTERN = re.compile(
    r'(<e:attachment-link\b[^>]*?\sref=")([^"]+)(")'
)

IMAGE_SRC_PATTERN = re.compile(r'(<e:image\b[^>]*?\ssrc=")([^"]+)(")')

INLINE_FORMULA_PATTERN = re.compile(r"\\\((.*?)\\\)")
DISPLAYED_FORMULA_PATTERN = re.compile(r"\\\[(.*?)\\\]")

LINE_BREAK = "<br/>"

_QUOTE_ENTITIES = {"&quot;": '"'}

_fragment_parser = etree.XMLParser(resolve_entities=False, no_network=True)


# ─── Rewrite Steps ────────────────────────────────────────────────────────────


def attachment_basename(path: str) -> str:
    """Strip everything up to and including an ``attachments/`` segment."""
    return ATTACHMENTS_PREFIX_PATTERN.sub("", path)


def rewrite_legacy_markup(html: str) -> str:
    """Rewrite old-style <img> and <a> markup into exam media elements."""
    html = LEGACY_CAPTIONED_IMG_PATTERN.sub(
        lambda m: f'<image src="{attachment_basename(m.group(1))}">{m.group(2)}</image>',
        html,
    )
    html = LEGACY_IMG_PATTERN.sub(
        lambda m: f'<image src="{attachment_basename(m.group(1))}"></image>',
        html,
    )
    html = LEGACY_ANCHOR_PATTERN.sub(
        lambda m: (
            f'{m.group(2)} <attachment-link '
            f'ref="{attachment_basename(m.group(1))}"></attachment-link>'
        ),
        html,
    )
    return SELF_CLOSED_MEDIA_PATTERN.sub(r"<\1\2></\1>", html)


def decode_html_entities(html: str) -> str:
    """
    Parse as an HTML fragment and re-serialize as XML.

    Entities come back as literal characters, void elements come back
    self-closed, and the result is trimmed with newlines turned into <br/>.
    """
    root = lxml.html.fragment_fromstring(html, create_parent="div")
    parts = [escape(root.text or "")]
    parts.extend(
        etree.tostring(child, encoding="unicode", method="xml")
        for child in root
    )
    return "".join(parts).strip().replace("\n", LINE_BREAK)


def rename_media_tags(markup: str) -> str:
    return MEDIA_TAG_PATTERN.sub(
        lambda m: f"<{m.group(1)}e:{m.group(2).lower()}", markup
    )


def hash_attachment_refs(markup: str) -> str:
    return ATTACHMENT_REF_PATTERN.sub(
        lambda m: m.group(1) + cross_reference_hash(
            unescape(m.group(2), _QUOTE_ENTITIES)
        ) + m.group(3),
        markup,
    )


def decode_image_sources(markup: str) -> str:
    """Undo percent-escaping so filenames with spaces or umlauts resolve."""
    return IMAGE_SRC_PATTERN.sub(
        lambda m: m.group(1) + escape(
            unquote(unescape(m.group(2), _QUOTE_ENTITIES)), {'"': "&quot;"}
        ) + m.group(3),
        markup,
    )


def extract_formulas(markup: str) -> str:
    markup = INLINE_FORMULA_PATTERN.sub(
        lambda m: f"<e:formula>{m.group(1).replace(LINE_BREAK, '')}</e:formula>",
        markup,
    )
    return DISPLAYED_FORMULA_PATTERN.sub(
        lambda m: (
            f'<e:formula mode="display">'
            f"{m.group(1).replace(LINE_BREAK, '')}</e:formula>"
        ),
        markup,
    )


def parse_fragment(markup: str) -> Fragment:
    """
    Parse markup strictly and return the wrapper's children.

    Raises:
        lxml.etree.XMLSyntaxError: If the markup is not well-formed.
    """
    wrapper = etree.fromstring(
        f'<div xmlns="{XHTML_NS}" xmlns:e="{EXAM_NS}">{markup}</div>',
        _fragment_parser,
    )
    fragment: Fragment = []
    if wrapper.text:
        fragment.append(wrapper.text)
    fragment.extend(wrapper)
    return fragment


_MARKUP_REWRITES = (
    decode_html_entities,
    rename_media_tags,
    hash_attachment_refs,
    decode_image_sources,
    extract_formulas,
)


def sanitize(raw_html: str) -> Fragment:
    """
    Convert inline HTML into an exam XML fragment.

    Args:
        raw_html: Rich text from exam content.

    Returns:
        List of nodes: an optional leading text string followed by elements.
    """
    markup = rewrite_legacy_markup(raw_html or "")
    for rewrite in _MARKUP_REWRITES:
        markup = rewrite(markup)
    return parse_fragment(markup)


# ─── Splicing ─────────────────────────────────────────────────────────────────


def append_text(parent: etree._Element, text: str):
    """Append text after the last child of ``parent`` (or as its text)."""
    if len(parent):
        last = parent[-1]
        last.tail = (last.tail or "") + text
    else:
        parent.text = (parent.text or "") + text


def append_fragment(parent: etree._Element, fragment: Fragment):
    for node in fragment:
        if isinstance(node, str):
            append_text(parent, node)
        else:
            parent.append(node)


def append_html(parent: etree._Element, raw_html: str):
    """Sanitize ``raw_html`` and splice the result into ``parent``."""
    append_fragment(parent, sanitize(raw_html))
