"""
Document Builder
================
Walks exam content and emits the canonical exam XML consumed by the
mastering engine.

Document layout:
    e:exam
    ├── e:languages/e:language
    ├── e:exam-title, e:exam-instruction
    ├── e:table-of-contents
    ├── e:external-material          (only with attachments)
    └── e:section*
        ├── e:section-title
        └── e:question*              (audiotest questions are skipped)

Element order mirrors content order; the answer id allocator relies on it.
"""

from __future__ import annotations

import logging
from typing import Optional

from lxml import etree

from .attachments import build_external_material
from .exceptions import UnsupportedQuestionTypeError
from .models import (
    Attachment,
    ChoiceGroupQuestion,
    ExamContent,
    Gap,
    GapText,
    MultiChoiceGapQuestion,
    QuestionType,
    Section,
    TextQuestion,
)
from .namespaces import NSMAP, exam_tag, xhtml_tag
from .sanitizer import append_html, append_text

logger = logging.getLogger(__name__)

EXAM_SCHEMA_VERSION = "0.1"
EXAM_LANGUAGE = "fi-FI"

TEXT_QUESTION_TITLE = "Tekstitehtävä / textuppgift"
CHOICE_GROUP_QUESTION_TITLE = "Monivalintatehtävä / flervalsuppgift"
MULTI_CHOICE_GAP_QUESTION_TITLE = (
    "Aukkomonivalintatehtävä / uppgift med flervalsluckor"
)

CHOICE_SEPARATOR_TEXT = "***"
CHOICE_SEPARATOR_CLASS = "e-font-size-xl e-mrg-y-4 e-color-link"


def option_score(correct: bool, max_score: int, scoring_count: int) -> int:
    """
    Points for one option: an equal integer share of ``max_score`` for a
    correct option, nothing otherwise. The division remainder is dropped.
    """
    if not correct or scoring_count <= 0:
        return 0
    return max_score // scoring_count


def serialize(root: etree._Element) -> str:
    """Serialize without pretty-printing; whitespace is content here."""
    return etree.tostring(
        root.getroottree(),
        xml_declaration=True,
        encoding="UTF-8",
        pretty_print=False,
    ).decode("utf-8")


class ExamXmlBuilder:
    """
    Builds exam XML from exam content.

    A builder holds no per-document state; every ``build`` call creates
    its own document, so one instance can serve concurrent conversions.
    """

    def __init__(
        self,
        schema_version: str = EXAM_SCHEMA_VERSION,
        language: str = EXAM_LANGUAGE,
    ):
        self.schema_version = schema_version
        self.language = language

    def build(
        self,
        content: ExamContent,
        attachments: Optional[list[Attachment]] = None,
    ) -> str:
        """
        Build the exam document.

        Args:
            content: Exam content tree.
            attachments: Attachments to declare as external material.

        Returns:
            Exam XML string.

        Raises:
            UnsupportedQuestionTypeError: On a question type with no builder.
            lxml.etree.XMLSyntaxError: If rich text cannot be sanitized.
        """
        return serialize(self.build_tree(content, attachments))

    def build_tree(
        self,
        content: ExamContent,
        attachments: Optional[list[Attachment]] = None,
    ) -> etree._Element:
        root = etree.Element(exam_tag("exam"), nsmap=NSMAP)
        root.set("exam-schema-version", self.schema_version)

        languages = etree.SubElement(root, exam_tag("languages"))
        etree.SubElement(languages, exam_tag("language")).text = self.language

        append_html(etree.SubElement(root, exam_tag("exam-title")), content.title)
        append_html(
            etree.SubElement(root, exam_tag("exam-instruction")),
            content.instruction,
        )
        etree.SubElement(root, exam_tag("table-of-contents"))

        if attachments:
            root.append(build_external_material(attachments))

        for section in content.sections:
            root.append(self._build_section(section))

        logger.debug(
            f"Built exam document: {len(content.sections)} sections, "
            f"{len(attachments or [])} attachments"
        )
        return root

    # ─── Sections & Questions ─────────────────────────────────────────────

    def _build_section(self, section: Section) -> etree._Element:
        el = etree.Element(exam_tag("section"), nsmap=NSMAP)

        if section.cas_forbidden:
            el.set("cas-forbidden", "true")

        title = etree.SubElement(el, exam_tag("section-title"))
        if section.title:
            append_html(title, section.title)

        for question in section.answerable_questions:
            el.append(self._build_question(question))

        return el

    def _build_question(self, question) -> etree._Element:
        question_type = question.type
        if question_type == QuestionType.TEXT.value:
            return self._build_text_question(question)
        if question_type == QuestionType.CHOICE_GROUP.value:
            return self._build_choice_group_question(question)
        if question_type == QuestionType.MULTI_CHOICE_GAP.value:
            return self._build_multi_choice_gap_question(question)
        raise UnsupportedQuestionTypeError(question_type)

    def _question_element(self, title: str, instruction: str) -> etree._Element:
        el = etree.Element(exam_tag("question"), nsmap=NSMAP)
        append_html(etree.SubElement(el, exam_tag("question-title")), title)
        append_html(
            etree.SubElement(el, exam_tag("question-instruction")), instruction
        )
        return el

    def _build_text_question(self, question: TextQuestion) -> etree._Element:
        el = self._question_element(TEXT_QUESTION_TITLE, question.text)

        answer = etree.SubElement(el, exam_tag("text-answer"))
        answer.set(
            "type",
            "rich-text" if question.screenshot_expected else "multi-line",
        )
        answer.set("max-score", str(question.max_score))

        return el

    def _build_choice_group_question(
        self, question: ChoiceGroupQuestion
    ) -> etree._Element:
        el = self._question_element(CHOICE_GROUP_QUESTION_TITLE, question.text)
        choice_count = len(question.choices)

        for choice in question.choices:
            choice_el = self._question_element("", choice.text)
            answer = etree.SubElement(choice_el, exam_tag("choice-answer"))

            for option in choice.options:
                option_el = etree.SubElement(
                    answer, exam_tag("choice-answer-option")
                )
                option_el.set("score", str(option_score(
                    option.correct, question.max_score, choice_count
                )))
                append_html(option_el, option.text)

            el.append(choice_el)

            if choice.break_after:
                separator = etree.SubElement(el, xhtml_tag("div"))
                separator.set("class", CHOICE_SEPARATOR_CLASS)
                separator.text = CHOICE_SEPARATOR_TEXT

        return el

    def _build_multi_choice_gap_question(
        self, question: MultiChoiceGapQuestion
    ) -> etree._Element:
        el = self._question_element(
            MULTI_CHOICE_GAP_QUESTION_TITLE, question.text
        )
        gap_count = len(question.gaps)

        for item in question.content:
            if isinstance(item, GapText):
                append_html(el, item.text)
            elif isinstance(item, Gap):
                dropdown = etree.Element(exam_tag("dropdown-answer"), nsmap=NSMAP)
                for option in item.options:
                    option_el = etree.SubElement(
                        dropdown, exam_tag("dropdown-answer-option")
                    )
                    option_el.set("score", str(option_score(
                        option.correct, question.max_score, gap_count
                    )))
                    append_html(option_el, option.text)

                # Spaces keep adjacent dropdowns from rendering flush
                append_text(el, " ")
                el.append(dropdown)
                append_text(el, " ")
            else:
                raise UnsupportedQuestionTypeError(
                    getattr(item, "type", type(item).__name__)
                )

        return el


def generate_exam_xml(
    content: ExamContent,
    attachments: Optional[list[Attachment]] = None,
) -> str:
    """Build exam XML with the default schema version and language."""
    return ExamXmlBuilder().build(content, attachments)
