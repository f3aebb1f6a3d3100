"""
Test Suite for the Exam XML Converter
=====================================
Unit tests for the sanitizer, attachment emitter, document builder,
answer id allocator and reference validator.
"""

from __future__ import annotations

from types import SimpleNamespace

import pytest
from lxml import etree

from examxml.allocator import allocate_answer_ids, parse_exam
from examxml.attachments import (
    build_external_material,
    cross_reference_hash,
    media_metadata_resolver,
    resolve_attachments,
)
from examxml.builder import (
    CHOICE_SEPARATOR_CLASS,
    ExamXmlBuilder,
    generate_exam_xml,
    option_score,
)
from examxml.exceptions import MissingMetadataError, UnsupportedQuestionTypeError
from examxml.models import (
    Attachment,
    AttachmentMetadata,
    AttachmentType,
    ExamContent,
)
from examxml.namespaces import NS, NSMAP, exam_tag, xhtml_tag
from examxml.sanitizer import append_html, sanitize
from examxml.validator import ReferenceValidator


def _content(questions, **section) -> ExamContent:
    return ExamContent.model_validate({
        "title": "Koe",
        "instruction": "",
        "sections": [dict(section, questions=questions)],
    })


def _exam_root(content: ExamContent, attachments=None) -> etree._Element:
    return parse_exam(generate_exam_xml(content, attachments))


def _attr_values(root: etree._Element, path: str, attr: str) -> list:
    return [el.get(attr) for el in root.iterfind(path, NS)]


# ═══════════════════════════════════════════════════════════════════════════════
# SANITIZER TESTS
# ═══════════════════════════════════════════════════════════════════════════════


class TestFormulaExtraction:
    """Test \\( \\) and \\[ \\] formula extraction."""

    def test_inline_formula(self):
        fragment = sanitize(r"\(x+1\)")
        assert len(fragment) == 1
        formula = fragment[0]
        assert formula.tag == exam_tag("formula")
        assert formula.text == "x+1"
        assert formula.get("mode") is None

    def test_display_formula(self):
        fragment = sanitize(r"\[y=2\]")
        assert len(fragment) == 1
        assert fragment[0].tag == exam_tag("formula")
        assert fragment[0].get("mode") == "display"
        assert fragment[0].text == "y=2"

    def test_line_breaks_removed_inside_formula(self):
        fragment = sanitize("\\(a\nb\\)")
        assert fragment[0].text == "ab"
        assert len(fragment[0]) == 0

    def test_formula_with_surrounding_text(self):
        fragment = sanitize(r"Laske \(1+1\) nopeasti")
        assert fragment[0] == "Laske "
        assert fragment[1].text == "1+1"
        assert fragment[1].tail == " nopeasti"

    def test_escaped_markup_stays_text(self):
        fragment = sanitize(r"\(a &lt; b\)")
        assert fragment[0].text == "a < b"


class TestHtmlDecoding:
    """Test entity decoding, trimming and line breaks."""

    def test_entities_decoded(self):
        assert sanitize("a &amp; b &auml;") == ["a & b ä"]

    def test_empty_input(self):
        assert sanitize("") == []

    def test_whitespace_trimmed(self):
        assert sanitize("  teksti  ") == ["teksti"]

    def test_newlines_become_line_breaks(self):
        fragment = sanitize("rivi1\nrivi2")
        assert fragment[0] == "rivi1"
        assert fragment[1].tag == xhtml_tag("br")
        assert fragment[1].tail == "rivi2"

    def test_html_elements_in_xhtml_namespace(self):
        fragment = sanitize("<p>Kappale <b>lihava</b></p>")
        assert len(fragment) == 1
        paragraph = fragment[0]
        assert paragraph.tag == xhtml_tag("p")
        assert paragraph[0].tag == xhtml_tag("b")
        assert paragraph[0].text == "lihava"

    def test_fragment_has_no_wrapper(self):
        fragment = sanitize("<p>yksi</p><p>kaksi</p>")
        assert [el.text for el in fragment] == ["yksi", "kaksi"]

    def test_malformed_markup_raises(self):
        # the formula closes inside <b>, leaving unbalanced tags
        with pytest.raises(etree.XMLSyntaxError):
            sanitize(r"\(a<b>c\)</b>")


class TestLegacyMarkup:
    """Test rewriting of old-style <img> and <a> markup."""

    def test_image_with_caption(self):
        fragment = sanitize('<img src="/attachments/kuva.png">Kuvateksti</img>')
        assert len(fragment) == 1
        image = fragment[0]
        assert image.tag == exam_tag("image")
        assert image.get("src") == "kuva.png"
        assert image.text == "Kuvateksti"

    def test_image_without_caption(self):
        fragment = sanitize('Katso <img src="attachments/kuva.png"> tästä')
        assert fragment[0] == "Katso "
        image = fragment[1]
        assert image.tag == exam_tag("image")
        assert image.get("src") == "kuva.png"
        assert image.text is None
        assert image.tail == " tästä"

    def test_anchor_becomes_attachment_link(self):
        fragment = sanitize('<a href="/attachments/liite.pdf">Liite</a>')
        assert fragment[0] == "Liite "
        link = fragment[1]
        assert link.tag == exam_tag("attachment-link")
        assert link.get("ref") == cross_reference_hash("liite.pdf")


class TestMediaTags:
    """Test renaming, reference hashing and source decoding."""

    def test_media_tags_renamed(self):
        fragment = sanitize(
            '<image src="a.png"></image><Video src="v.webm"></Video>'
            '<audio src="s.ogg"></audio>'
        )
        assert [el.tag for el in fragment] == [
            exam_tag("image"),
            exam_tag("video"),
            exam_tag("audio"),
        ]

    def test_self_closed_media_tag_keeps_following_text(self):
        fragment = sanitize('a <image src="x.png"/> b')
        assert fragment[0] == "a "
        assert fragment[1].tag == exam_tag("image")
        assert fragment[1].text is None
        assert fragment[1].tail == " b"

    def test_attachment_link_ref_hashed(self):
        fragment = sanitize('<attachment-link ref="liite.pdf"></attachment-link>')
        assert fragment[0].get("ref") == (
            "af14840355af6fb54c3ec1d7a2be0cead91950d4"
        )

    def test_image_source_percent_decoded(self):
        fragment = sanitize('<image src="kuva%20%C3%A4.png"></image>')
        assert fragment[0].get("src") == "kuva ä.png"

    def test_append_html_splices_into_parent(self):
        parent = etree.Element(exam_tag("question-instruction"), nsmap=NSMAP)
        append_html(parent, "Alku <b>keski</b> loppu")
        assert parent.text == "Alku "
        assert len(parent) == 1
        assert parent[0].tail == " loppu"


# ═══════════════════════════════════════════════════════════════════════════════
# ATTACHMENT TESTS
# ═══════════════════════════════════════════════════════════════════════════════


class TestCrossReferenceHash:
    """Test the SHA-1 cross-reference hash."""

    def test_known_value(self):
        assert cross_reference_hash("kuva.png") == (
            "4a275b8471828f1cdf3c5b810ecc3c9ffa7d6920"
        )

    def test_non_ascii_hashed_unescaped(self):
        assert cross_reference_hash("ääni.mp3") == (
            "96165ba850ea511f44e6d736cf2cf1d43521af4b"
        )

    def test_stable_and_distinct(self):
        assert cross_reference_hash("a.png") == cross_reference_hash("a.png")
        assert cross_reference_hash("a.png") != cross_reference_hash("b.png")


class TestExternalMaterial:
    """Test the external material block."""

    def test_one_attachment_element_per_attachment(self):
        el = build_external_material([
            Attachment(filename="kuva.png", type=AttachmentType.IMAGE),
            Attachment(filename="liite.pdf", type=AttachmentType.FILE),
        ])
        assert el.tag == exam_tag("external-material")
        assert len(el) == 2

        first = el[0]
        assert first.get("name") == cross_reference_hash("kuva.png")
        assert first.findtext("e:attachment-title", namespaces=NS) == "kuva.png"
        assert first.find("e:image", NS).get("src") == "kuva.png"
        assert el[1].find("e:file", NS).get("src") == "liite.pdf"


class TestResolveAttachments:
    """Test attachment list resolution from MIME types and metadata."""

    def test_types_from_mimetypes(self):
        attachments = resolve_attachments(
            {
                "kuva.png": "image/png",
                "liite.pdf": "application/pdf",
                "ääni.ogg": "audio/ogg",
            },
            {
                "kuva.png": AttachmentMetadata(width=800, height=600),
                "ääni.ogg": AttachmentMetadata(duration=12),
            },
        )
        assert [a.filename for a in attachments] == [
            "kuva.png", "liite.pdf", "ääni.ogg",
        ]
        assert [a.type for a in attachments] == [
            AttachmentType.IMAGE, AttachmentType.FILE, AttachmentType.AUDIO,
        ]

    def test_missing_metadata_fails(self):
        with pytest.raises(MissingMetadataError) as exc_info:
            resolve_attachments({"kuva.png": "image/png"}, {})
        assert exc_info.value.filename == "kuva.png"
        assert "kuva.png" in str(exc_info.value)

    def test_files_need_no_metadata(self):
        attachments = resolve_attachments({"liite.pdf": "application/pdf"})
        assert attachments[0].type == AttachmentType.FILE


class TestMediaMetadataResolver:
    """Test the metadata callback handed to mastering."""

    def test_audio_duration_default(self):
        resolve = media_metadata_resolver({"a.ogg": AttachmentMetadata()})
        assert resolve("a.ogg", "audio") == {"duration": 999}

    def test_partial_dimensions(self):
        resolve = media_metadata_resolver(
            {"k.png": AttachmentMetadata(width=800)}
        )
        assert resolve("k.png", "image") == {"width": 800, "height": 999}

    def test_unrecorded_attachment_placeholders(self):
        resolve = media_metadata_resolver({})
        assert resolve("x.webm", "video") == {
            "duration": 999, "width": 640, "height": 480,
        }


# ═══════════════════════════════════════════════════════════════════════════════
# BUILDER TESTS
# ═══════════════════════════════════════════════════════════════════════════════


class TestOptionScore:
    """Test integer score distribution."""

    def test_floor_division(self):
        assert option_score(True, 10, 3) == 3

    def test_incorrect_option_scores_zero(self):
        assert option_score(False, 10, 3) == 0

    def test_no_scoring_items(self):
        assert option_score(True, 10, 0) == 0


class TestExamDocument:
    """Test the exam root and its fixed children."""

    def test_root_structure(self, exam_content):
        root = _exam_root(exam_content)
        assert root.tag == exam_tag("exam")
        assert root.get("exam-schema-version") == "0.1"
        assert root.nsmap == NSMAP
        assert root.findtext("e:languages/e:language", namespaces=NS) == "fi-FI"
        assert root.findtext("e:exam-title", namespaces=NS) == "Koe"
        assert root.findtext("e:exam-instruction", namespaces=NS) == "Ohje"
        assert root.find("e:table-of-contents", NS) is not None

    def test_no_external_material_without_attachments(self, exam_content):
        root = _exam_root(exam_content, [])
        assert root.find("e:external-material", NS) is None

    def test_external_material_before_sections(self, exam_content):
        root = _exam_root(exam_content, [
            Attachment(filename="liite.pdf", type=AttachmentType.FILE),
        ])
        children = [etree.QName(el).localname for el in root]
        assert children.index("external-material") == (
            children.index("table-of-contents") + 1
        )
        assert children.index("external-material") < children.index("section")

    def test_not_pretty_printed(self, exam_content):
        xml = generate_exam_xml(exam_content)
        assert "\n " not in xml


class TestSections:
    """Test section attributes, titles and question filtering."""

    def test_cas_forbidden(self, exam_content):
        sections = _exam_root(exam_content).findall("e:section", NS)
        assert sections[0].get("cas-forbidden") == "true"
        assert sections[1].get("cas-forbidden") is None

    def test_section_titles(self, exam_content):
        sections = _exam_root(exam_content).findall("e:section", NS)
        assert sections[0].findtext("e:section-title", namespaces=NS) == "Osa 1"
        empty = sections[1].find("e:section-title", NS)
        assert empty is not None
        assert empty.text is None and len(empty) == 0

    def test_audiotest_not_emitted(self):
        content = _content([
            {"type": "audiotest"},
            {"type": "text", "id": 1, "text": "Q", "maxScore": 2},
        ])
        section = _exam_root(content).find("e:section", NS)
        assert len(section.findall("e:question", NS)) == 1


class TestQuestions:
    """Test per-type question markup."""

    def test_text_question(self, exam_content):
        root = _exam_root(exam_content)
        answers = root.findall(".//e:text-answer", NS)
        assert [a.get("type") for a in answers] == ["multi-line", "rich-text"]
        assert [a.get("max-score") for a in answers] == ["6", "4"]

        question = answers[0].getparent()
        assert question.findtext("e:question-title", namespaces=NS) == (
            "Tekstitehtävä / textuppgift"
        )
        assert question.findtext("e:question-instruction", namespaces=NS) == (
            "Kirjoita"
        )

    def test_choice_group_scores_truncate(self, exam_content):
        root = _exam_root(exam_content)
        scores = _attr_values(root, ".//e:choice-answer-option", "score")
        # 10 points over 3 choices: 3 each, 1 point left unallocated
        assert scores == ["3", "0", "0", "3", "3", "0"]
        assert sum(int(s) for s in scores) <= 10

    def test_choice_group_nested_questions(self, exam_content):
        section = _exam_root(exam_content).find("e:section", NS)
        group = section.findall("e:question", NS)[1]
        choices = group.findall("e:question", NS)
        assert len(choices) == 3
        assert choices[0].findtext("e:question-title", namespaces=NS) == ""
        assert choices[0].findtext("e:question-instruction", namespaces=NS) == (
            "Onko?"
        )
        options = choices[0].findall("e:choice-answer/e:choice-answer-option", NS)
        assert [o.text for o in options] == ["kyllä", "ei"]

    def test_break_after_separator(self, exam_content):
        section = _exam_root(exam_content).find("e:section", NS)
        group = section.findall("e:question", NS)[1]
        local_names = [etree.QName(el).localname for el in group]
        # title, instruction, choice, separator, choice, choice
        assert local_names == [
            "question-title", "question-instruction",
            "question", "div", "question", "question",
        ]
        separator = group[3]
        assert separator.tag == xhtml_tag("div")
        assert separator.get("class") == CHOICE_SEPARATOR_CLASS
        assert separator.text == "***"

    def test_multi_choice_gap(self, exam_content):
        section = _exam_root(exam_content).findall("e:section", NS)[1]
        question = section.find("e:question", NS)
        dropdowns = question.findall("e:dropdown-answer", NS)
        assert len(dropdowns) == 2

        instruction = question.find("e:question-instruction", NS)
        assert instruction.tail == "Kissa on "
        assert dropdowns[0].tail == " ja koira on "
        assert dropdowns[1].tail == " "

        # 5 points over 2 gaps
        scores = _attr_values(question, ".//e:dropdown-answer-option", "score")
        assert scores == ["2", "0", "2", "0"]

    def test_unsupported_question_type(self):
        with pytest.raises(UnsupportedQuestionTypeError):
            ExamXmlBuilder()._build_question(SimpleNamespace(type="essay"))


# ═══════════════════════════════════════════════════════════════════════════════
# ALLOCATOR TESTS
# ═══════════════════════════════════════════════════════════════════════════════


class TestAnswerIdAllocator:
    """Test positional id allocation on (identity-)mastered XML."""

    def test_every_answer_gets_its_id(self, exam_content):
        xml = generate_exam_xml(exam_content)
        root = parse_exam(allocate_answer_ids(xml, exam_content))

        assert _attr_values(root, ".//e:text-answer", "question-id") == [
            "11", "12",
        ]
        assert _attr_values(root, ".//e:choice-answer", "question-id") == [
            "21", "22", "23",
        ]
        assert _attr_values(root, ".//e:choice-answer-option", "option-id") == [
            "211", "212", "221", "222", "231", "232",
        ]
        assert _attr_values(root, ".//e:dropdown-answer", "question-id") == [
            "31", "32",
        ]
        assert _attr_values(
            root, ".//e:dropdown-answer-option", "option-id"
        ) == ["311", "312", "321", "322"]

    def test_audiotest_skipped_in_counting(self):
        content = _content([
            {"type": "audiotest"},
            {"type": "text", "id": 7, "text": "Q", "maxScore": 2},
        ])
        root = parse_exam(
            allocate_answer_ids(generate_exam_xml(content), content)
        )
        assert _attr_values(root, ".//e:text-answer", "question-id") == ["7"]

    def test_structure_mismatch_raises(self):
        content = _content([
            {"type": "text", "id": 1, "text": "Q1", "maxScore": 2},
            {"type": "text", "id": 2, "text": "Q2", "maxScore": 2},
        ])
        root = parse_exam(generate_exam_xml(content))
        section = root.find("e:section", NS)
        section.remove(section.findall("e:question", NS)[1])
        mastered = etree.tostring(root, encoding="unicode")

        with pytest.raises(IndexError):
            allocate_answer_ids(mastered, content)

    def test_existing_markup_preserved(self, exam_content):
        xml = generate_exam_xml(exam_content)
        root = parse_exam(allocate_answer_ids(xml, exam_content))
        assert root.findtext("e:exam-title", namespaces=NS) == "Koe"
        assert len(root.findall(".//e:question", NS)) == 7


# ═══════════════════════════════════════════════════════════════════════════════
# REFERENCE VALIDATOR TESTS
# ═══════════════════════════════════════════════════════════════════════════════


class TestReferenceValidator:
    """Test cross-reference integrity reporting."""

    def test_resolved_link(self):
        content = _content([{
            "type": "text",
            "id": 1,
            "text": '<a href="/attachments/liite.pdf">Liite</a>',
            "maxScore": 1,
        }])
        xml = generate_exam_xml(content, [
            Attachment(filename="liite.pdf", type=AttachmentType.FILE),
        ])
        report = ReferenceValidator().validate(xml)
        assert report.is_consistent
        assert report.reference_count == 1
        assert report.attachment_count == 1

    def test_unresolved_link(self):
        content = _content([{
            "type": "text",
            "id": 1,
            "text": '<attachment-link ref="puuttuu.pdf"/>',
            "maxScore": 1,
        }])
        report = ReferenceValidator().validate(generate_exam_xml(content))
        assert not report.is_consistent
        assert report.unresolved_references == [
            cross_reference_hash("puuttuu.pdf")
        ]

    def test_unknown_media_source(self):
        content = _content([{
            "type": "text",
            "id": 1,
            "text": '<image src="x.png"></image>',
            "maxScore": 1,
        }])
        xml = generate_exam_xml(content, [
            Attachment(filename="y.png", type=AttachmentType.IMAGE),
        ])
        report = ReferenceValidator().validate(xml)
        assert report.unknown_media_sources == ["x.png"]

    def test_accepts_built_tree(self, exam_content):
        root = ExamXmlBuilder().build_tree(exam_content, [])
        report = ReferenceValidator().validate(root)
        assert report.is_consistent
        assert report.reference_count == 0
