"""
Answer-Id Allocator
===================
Stamps question and option identifiers onto mastered exam XML.

The mastering engine does not keep caller-supplied identifiers, so ids are
re-attached by walking the mastered document and the source content in
the same order the builder used. The walk is purely positional: it assumes
the mastered document has exactly the elements the builder emitted, in the
same order. A mismatch is not detected and surfaces as an IndexError.
"""

from __future__ import annotations

import logging

from lxml import etree

from .builder import serialize
from .models import (
    ChoiceGroupQuestion,
    ExamContent,
    MultiChoiceGapQuestion,
    QuestionType,
    TextQuestion,
)
from .namespaces import NS

logger = logging.getLogger(__name__)

_xml_parser = etree.XMLParser(
    remove_blank_text=False, resolve_entities=False, no_network=True
)


def parse_exam(xml: str) -> etree._Element:
    """Parse exam XML (with or without an XML declaration)."""
    return etree.fromstring(xml.encode("utf-8"), _xml_parser)


class AnswerIdAllocator:
    """
    Re-attaches answer ids to a mastered exam document.

    Sets ``question-id`` on text, choice and dropdown answers and
    ``option-id`` on choice and dropdown options.
    """

    def allocate(self, mastered_xml: str, content: ExamContent) -> str:
        """
        Args:
            mastered_xml: Output of the mastering transform.
            content: The content the document was built from, unchanged.

        Returns:
            Mastered XML with answer ids.

        Raises:
            IndexError: If the document's structure does not match content.
        """
        root = parse_exam(mastered_xml)
        section_elements = root.findall(".//e:section", NS)

        for section_index, section in enumerate(content.sections):
            section_element = section_elements[section_index]
            question_elements = section_element.findall("e:question", NS)

            for question_index, question in enumerate(section.answerable_questions):
                self._allocate_question(
                    question_elements[question_index], question
                )

        logger.debug(
            f"Allocated answer ids for {len(content.sections)} sections"
        )
        return serialize(root)

    def _allocate_question(self, element: etree._Element, question):
        if question.type == QuestionType.TEXT.value:
            self._allocate_text(element, question)
        elif question.type == QuestionType.CHOICE_GROUP.value:
            self._allocate_choice_group(element, question)
        elif question.type == QuestionType.MULTI_CHOICE_GAP.value:
            self._allocate_multi_choice_gap(element, question)

    def _allocate_text(self, element: etree._Element, question: TextQuestion):
        answer = element.findall("e:text-answer", NS)[0]
        answer.set("question-id", str(question.id))

    def _allocate_choice_group(
        self, element: etree._Element, question: ChoiceGroupQuestion
    ):
        choice_elements = element.findall("e:question", NS)

        for choice_index, choice in enumerate(question.choices):
            answer = choice_elements[choice_index].findall(
                "e:choice-answer", NS
            )[0]
            answer.set("question-id", str(choice.id))

            option_elements = answer.findall("e:choice-answer-option", NS)
            for option_index, option in enumerate(choice.options):
                option_elements[option_index].set("option-id", str(option.id))

    def _allocate_multi_choice_gap(
        self, element: etree._Element, question: MultiChoiceGapQuestion
    ):
        answer_elements = element.findall("e:dropdown-answer", NS)

        for gap_index, gap in enumerate(question.gaps):
            answer = answer_elements[gap_index]
            answer.set("question-id", str(gap.id))

            option_elements = answer.findall("e:dropdown-answer-option", NS)
            for option_index, option in enumerate(gap.options):
                option_elements[option_index].set("option-id", str(option.id))


def allocate_answer_ids(mastered_xml: str, content: ExamContent) -> str:
    return AnswerIdAllocator().allocate(mastered_xml, content)
