"""
Mastering Collaborator
======================
Interface to the external exam mastering engine.

A mastering transform is any callable:
    transform(xml, exam_id_supplier, resolve_media_metadata, options)
        -> list[MasteringResult]

The engine itself is opaque. ``HttpMasteringClient`` reaches a remote
mastering service; tests and dry runs can pass any other callable.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional

import requests
from lxml import etree

from .attachments import MediaMetadataResolver, media_metadata_resolver
from .exceptions import DataError
from .models import AttachmentMetadata, MasteringOptions, MasteringResult
from .namespaces import NS

logger = logging.getLogger(__name__)

MasteringTransform = Callable[
    [str, Callable[[], str], MediaMetadataResolver, MasteringOptions],
    list[MasteringResult],
]

MEDIA_ELEMENTS = ("image", "audio", "video")


def call_exam_mastering(
    transform: MasteringTransform,
    exam_uuid: str,
    xml: str,
    options: MasteringOptions,
    attachments_metadata: Optional[dict[str, AttachmentMetadata]] = None,
) -> list[MasteringResult]:
    """
    Run the mastering transform for one exam.

    Raises:
        DataError: If the transform returns anything but a single document
            (multi-language exams are not supported).
    """
    resolver = media_metadata_resolver(attachments_metadata)
    results = transform(xml, lambda: exam_uuid, resolver, options)

    if len(results) > 1:
        raise DataError(
            "Multi-language exams are not supported", status_code=400
        )
    if not results:
        raise DataError("Mastering produced no exam document", status_code=400)

    return results


def collect_media_sources(xml: str) -> list[tuple[str, str]]:
    """(src, element name) of every media element, first occurrence only."""
    root = etree.fromstring(xml.encode("utf-8"))
    seen: set[str] = set()
    sources: list[tuple[str, str]] = []

    for name in MEDIA_ELEMENTS:
        for el in root.iterfind(f".//e:{name}", NS):
            src = el.get("src")
            if src and src not in seen:
                seen.add(src)
                sources.append((src, name))

    return sources


class HttpMasteringClient:
    """
    Mastering transform backed by a remote mastering service.

    The service cannot call back into the media metadata resolver, so every
    media source in the document is resolved up front and sent along.
    """

    def __init__(self, base_url: str, timeout: float = 60.0):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    def __call__(
        self,
        xml: str,
        exam_id_supplier: Callable[[], str],
        resolve_media_metadata: MediaMetadataResolver,
        options: MasteringOptions,
    ) -> list[MasteringResult]:
        media_metadata = {
            src: resolve_media_metadata(src, media_type)
            for src, media_type in collect_media_sources(xml)
        }
        url = f"{self.base_url}/api/master"
        logger.info(f"Requesting mastering from {url}")

        resp = requests.post(
            url,
            json={
                "xml": xml,
                "examId": exam_id_supplier(),
                "mediaMetadata": media_metadata,
                "options": options.model_dump(by_alias=True),
            },
            headers={"Accept": "application/json"},
            timeout=self.timeout,
        )
        resp.raise_for_status()

        results = [MasteringResult.model_validate(item) for item in resp.json()]
        logger.info(f"Mastering returned {len(results)} document(s)")
        return results
