"""
Attachment Emitter
==================
External material block of the exam document and the cross-reference hash
that links in-text attachment references to their declarations.

The hash must be computed identically for the attachment ``name`` and every
``e:attachment-link`` ``ref``, or references will not resolve.
"""

from __future__ import annotations

import hashlib
import json
import logging
from typing import Callable, Optional

from lxml import etree

from .exceptions import MissingMetadataError
from .models import MEDIA_TYPES, Attachment, AttachmentMetadata, AttachmentType
from .namespaces import NSMAP, exam_tag

logger = logging.getLogger(__name__)

# Placeholder media properties when an attachment has no recorded metadata
DEFAULT_DURATION = 999
DEFAULT_DIMENSION = 999
DEFAULT_WIDTH = 640
DEFAULT_HEIGHT = 480

MediaMetadataResolver = Callable[[str, str], dict]


def cross_reference_hash(filename: str) -> str:
    """SHA-1 hex digest of the JSON string encoding of ``filename``."""
    encoded = json.dumps(filename, ensure_ascii=False)
    return hashlib.sha1(encoded.encode("utf-8")).hexdigest()


# ─── XML ──────────────────────────────────────────────────────────────────────


def build_attachment(attachment: Attachment) -> etree._Element:
    el = etree.Element(exam_tag("attachment"), nsmap=NSMAP)
    # name is what e:attachment-link refs point at
    el.set("name", cross_reference_hash(attachment.filename))
    title = etree.SubElement(el, exam_tag("attachment-title"))
    title.text = attachment.filename
    media = etree.SubElement(el, exam_tag(AttachmentType(attachment.type).value))
    media.set("src", attachment.filename)
    return el


def build_external_material(attachments: list[Attachment]) -> etree._Element:
    """One ``e:attachment`` per attachment, in list order."""
    el = etree.Element(exam_tag("external-material"), nsmap=NSMAP)
    for attachment in attachments:
        el.append(build_attachment(attachment))
    return el


# ─── Attachment Resolution ────────────────────────────────────────────────────


def attachment_type_for(mimetype: str) -> AttachmentType:
    """Map ``image/png``, ``audio/ogg``, ... to an attachment type."""
    major = (mimetype or "").split("/")[0]
    for media_type in MEDIA_TYPES:
        if major == media_type.value:
            return media_type
    return AttachmentType.FILE


def resolve_attachments(
    mimetypes: dict[str, str],
    metadata: Optional[dict[str, AttachmentMetadata]] = None,
) -> list[Attachment]:
    """
    Build the attachment list of an exam.

    Args:
        mimetypes: filename → MIME type, in attachment order.
        metadata: filename → recorded media metadata.

    Returns:
        Attachments in the same order as ``mimetypes``.

    Raises:
        MissingMetadataError: If an image, audio or video attachment has
            no metadata entry.
    """
    metadata = metadata or {}
    attachments: list[Attachment] = []

    for filename, mimetype in mimetypes.items():
        attachment_type = attachment_type_for(mimetype)
        if attachment_type in MEDIA_TYPES and not metadata.get(filename):
            raise MissingMetadataError(filename)
        attachments.append(Attachment(
            filename=filename,
            type=attachment_type,
            metadata=metadata.get(filename),
        ))

    logger.debug(f"Resolved {len(attachments)} attachments")
    return attachments


def media_metadata_resolver(
    metadata: Optional[dict[str, AttachmentMetadata]] = None,
) -> MediaMetadataResolver:
    """
    Build the media metadata callback handed to the mastering transform.

    Recorded attachments get 999 for each missing field. Attachments with
    no record at all get placeholder values so hand-written XML can be
    mastered before its attachments are uploaded.
    """
    metadata = metadata or {}

    def resolve(filename: str, media_type: str) -> dict:
        recorded = metadata.get(filename)
        if not recorded:
            return {
                "duration": DEFAULT_DURATION,
                "width": DEFAULT_WIDTH,
                "height": DEFAULT_HEIGHT,
            }
        if media_type == AttachmentType.AUDIO.value:
            return {"duration": recorded.duration or DEFAULT_DURATION}
        return {
            "width": recorded.width or DEFAULT_DIMENSION,
            "height": recorded.height or DEFAULT_DIMENSION,
        }

    return resolve
