"""
XML namespaces of the exam format.
"""

from __future__ import annotations

EXAM_NS = "http://ylioppilastutkinto.fi/exam.xsd"
XHTML_NS = "http://www.w3.org/1999/xhtml"

# Root declaration: XHTML as default namespace, exam elements under "e:"
NSMAP = {None: XHTML_NS, "e": EXAM_NS}

# Prefix map for find()/findall()/xpath() lookups
NS = {"e": EXAM_NS, "xhtml": XHTML_NS}


def exam_tag(name: str) -> str:
    """Clark-notation tag for an element in the exam namespace."""
    return f"{{{EXAM_NS}}}{name}"


def xhtml_tag(name: str) -> str:
    return f"{{{XHTML_NS}}}{name}"
