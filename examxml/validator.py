"""
Reference Validator
===================
Post-build cross-reference check of an exam document:
    - Attachment names declared more than once
    - attachment-link refs that match no declared attachment
    - Inline image/audio/video sources that name no declared attachment

Problems are reported and logged, never silently ignored. Content itself
is not validated.
"""

from __future__ import annotations

import logging
from collections import Counter
from typing import Union

from lxml import etree

from .allocator import parse_exam
from .models import ReferenceReport
from .namespaces import NS

logger = logging.getLogger(__name__)


class ReferenceValidator:
    """Checks that in-text references resolve to declared attachments."""

    def validate(
        self,
        document: Union[str, etree._Element],
    ) -> ReferenceReport:
        """
        Args:
            document: Exam XML string or a built exam root element.

        Returns:
            ReferenceReport with all detected issues.
        """
        root = parse_exam(document) if isinstance(document, str) else document
        report = ReferenceReport()

        declared = root.findall(".//e:external-material/e:attachment", NS)
        names = Counter(el.get("name") for el in declared)
        filenames = {
            el.findtext("e:attachment-title", default="", namespaces=NS)
            for el in declared
        }
        report.attachment_count = len(declared)
        report.duplicate_attachments = sorted(
            name for name, count in names.items() if count > 1
        )

        refs = [el.get("ref") for el in root.iterfind(".//e:attachment-link", NS)]
        report.reference_count = len(refs)
        report.unresolved_references = sorted({
            ref for ref in refs if ref not in names
        })

        unknown: set[str] = set()
        for name in ("image", "audio", "video"):
            for el in root.iterfind(f".//e:{name}", NS):
                if _in_external_material(el):
                    continue
                src = el.get("src")
                if src and src not in filenames:
                    unknown.add(src)
        report.unknown_media_sources = sorted(unknown)

        self._log_report(report)
        return report

    def _log_report(self, report: ReferenceReport):
        if report.is_consistent:
            logger.debug(
                f"References OK: {report.reference_count} links, "
                f"{report.attachment_count} attachments"
            )
            return

        for name in report.duplicate_attachments:
            logger.warning(f"Attachment declared more than once: {name}")
        for ref in report.unresolved_references:
            logger.warning(f"Unresolved attachment reference: {ref}")
        for src in report.unknown_media_sources:
            logger.warning(f"Media source is not an attachment: {src}")


def _in_external_material(el: etree._Element) -> bool:
    return any(
        etree.QName(ancestor).localname == "external-material"
        for ancestor in el.iterancestors()
    )
