"""
Conversion Engine
=================
Top-level orchestrator for the two ways an exam reaches the mastering
engine.

Usage:
    engine = ConversionEngine(config, mastering=transform)
    result = engine.convert(record)     # JSON content → XML with answer ids
    output = engine.master(record)      # hand-written XML → mastered XML

Architecture:
    ExamRecord → resolve_attachments → ExamXmlBuilder → exam XML →
    mastering transform → mastered XML → AnswerIdAllocator → ConversionResult
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .allocator import AnswerIdAllocator
from .attachments import resolve_attachments
from .builder import ExamXmlBuilder, serialize
from .exceptions import ConversionError, DataError, MasteringError
from .mastering import HttpMasteringClient, MasteringTransform, call_exam_mastering
from .models import (
    ConversionResult,
    ExamRecord,
    MasteringOptions,
    MasteringOutput,
)
from .validator import ReferenceValidator

logger = logging.getLogger(__name__)

LOG_FORMAT = "[%(asctime)s] %(levelname)-8s %(name)s: %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


@dataclass
class ConversionConfig:
    """Configuration for the conversion engine."""

    # Mastering service
    mastering_url: Optional[str] = None
    mastering_timeout: float = 60.0

    # Deterministic multi-choice shuffling, XML mastering path only
    shuffle_secret: Optional[str] = None

    # Log cross-reference problems of built documents
    check_references: bool = True

    # Logging
    log_level: str = "INFO"
    log_file: Optional[str] = None


class ConversionEngine:
    """
    Exam conversion engine.

    Orchestrates:
        1. Attachment resolution (fails fast on missing media metadata)
        2. Exam XML building
        3. Mastering (the single blocking call)
        4. Answer id allocation

    Holds no per-exam state; concurrent conversions of different exams are
    independent.
    """

    def __init__(
        self,
        config: Optional[ConversionConfig] = None,
        mastering: Optional[MasteringTransform] = None,
    ):
        self.config = config or ConversionConfig()
        self._setup_logging()

        if mastering is None and self.config.mastering_url:
            mastering = HttpMasteringClient(
                self.config.mastering_url,
                timeout=self.config.mastering_timeout,
            )
        self.mastering = mastering
        self.builder = ExamXmlBuilder()
        self.allocator = AnswerIdAllocator()
        self.validator = ReferenceValidator()

    def _setup_logging(self):
        """Configure logging based on config."""
        log_level = getattr(logging, self.config.log_level.upper(), logging.INFO)

        package_logger = logging.getLogger("examxml")
        package_logger.setLevel(log_level)

        if not package_logger.handlers:
            console = logging.StreamHandler()
            console.setLevel(log_level)
            console.setFormatter(
                logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)
            )
            package_logger.addHandler(console)

        if self.config.log_file:
            log_dir = Path(self.config.log_file).parent
            log_dir.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(
                self.config.log_file, encoding="utf-8"
            )
            file_handler.setLevel(log_level)
            file_handler.setFormatter(
                logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)
            )
            package_logger.addHandler(file_handler)

    # ─── Building ─────────────────────────────────────────────────────────

    def build(self, record: ExamRecord) -> str:
        """
        Build exam XML from a record's JSON content.

        Raises:
            DataError: If the record has no JSON content.
            MissingMetadataError: If a media attachment lacks metadata.
        """
        if record.content is None:
            raise DataError(f"Exam {record.exam_uuid} has no JSON content")

        attachments = resolve_attachments(
            record.attachments_mimetype, record.attachments_metadata
        )
        root = self.builder.build_tree(record.content, attachments)

        if self.config.check_references:
            self.validator.validate(root)

        return serialize(root)

    # ─── Call Paths ───────────────────────────────────────────────────────

    def convert(self, record: ExamRecord) -> ConversionResult:
        """
        Convert JSON exam content into mastered XML with answer ids.

        Raises:
            ConversionError: On any failure; the cause is chained.
        """
        start_time = time.time()
        logger.info(f"Starting conversion of exam {record.exam_uuid}")

        try:
            exam_xml = self.build(record)

            options = MasteringOptions(
                throw_on_latex_error=False,
                multi_choice_shuffle_secret=None,
            )
            results = call_exam_mastering(
                self._require_mastering(),
                record.exam_uuid,
                exam_xml,
                options,
                record.attachments_metadata,
            )

            xml_with_answer_ids = self.allocator.allocate(
                results[0].xml, record.content
            )
        except Exception as e:
            logger.warning(
                f"Exam conversion failed for {record.exam_uuid}: "
                f"{type(e).__name__}: {e}"
            )
            raise ConversionError(f"Exam conversion failed: {e}") from e

        elapsed = time.time() - start_time
        logger.info(
            f"Conversion of exam {record.exam_uuid} complete in {elapsed:.2f}s"
        )
        return ConversionResult(
            xml=xml_with_answer_ids,
            attachments=results[0].attachments,
        )

    def master(self, record: ExamRecord) -> MasteringOutput:
        """
        Master a hand-written exam XML.

        Raises:
            MasteringError: On any failure; the cause is chained.
        """
        logger.info(f"Starting XML mastering of exam {record.exam_uuid}")

        try:
            if not record.content_xml:
                raise DataError(f"Exam {record.exam_uuid} has no XML content")

            options = MasteringOptions(
                multi_choice_shuffle_secret=self.config.shuffle_secret,
            )
            results = call_exam_mastering(
                self._require_mastering(),
                record.exam_uuid,
                record.content_xml,
                options,
                record.attachments_metadata,
            )
        except Exception as e:
            logger.warning(
                f"XML mastering failed for {record.exam_uuid}: "
                f"{type(e).__name__}: {e}"
            )
            raise MasteringError("XML mastering failed") from e

        result = results[0]
        return MasteringOutput(
            xml=result.xml,
            attachments=result.attachments,
            grading_structure=result.grading_structure,
            exam_title=result.title,
        )

    def _require_mastering(self) -> MasteringTransform:
        if self.mastering is None:
            raise RuntimeError(
                "No mastering transform configured (set mastering_url)"
            )
        return self.mastering
