"""
Data Models
===========
Pydantic models for exam content, attachments and mastering results.
JSON input uses camelCase keys; attributes are snake_case.
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, computed_field
from pydantic.alias_generators import to_camel

Identifier = Union[int, str]


class _CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )


# ─── Enums ────────────────────────────────────────────────────────────────────


class QuestionType(str, Enum):
    """Question types of the exam content format."""
    TEXT = "text"
    CHOICE_GROUP = "choicegroup"
    MULTI_CHOICE_GAP = "multichoicegap"
    AUDIO_TEST = "audiotest"


class AttachmentType(str, Enum):
    """Attachment kinds; the value doubles as the exam XML element name."""
    IMAGE = "image"
    AUDIO = "audio"
    VIDEO = "video"
    FILE = "file"


MEDIA_TYPES = (AttachmentType.IMAGE, AttachmentType.AUDIO, AttachmentType.VIDEO)


# ─── Content Models ───────────────────────────────────────────────────────────


class Option(_CamelModel):
    """A selectable answer option of a choice or a gap."""
    id: Identifier
    text: str = ""
    correct: bool = False


class Choice(_CamelModel):
    """One sub-question of a choice group question."""
    id: Identifier
    text: str = ""
    break_after: bool = False
    options: list[Option] = Field(default_factory=list)


class GapText(_CamelModel):
    """Literal text between gaps."""
    type: Literal["text"] = "text"
    text: str = ""


class Gap(_CamelModel):
    """A fill-in slot rendered as a dropdown."""
    type: Literal["gap"] = "gap"
    id: Identifier
    options: list[Option] = Field(default_factory=list)


GapContent = Annotated[Union[GapText, Gap], Field(discriminator="type")]


class TextQuestion(_CamelModel):
    type: Literal["text"] = "text"
    id: Identifier
    text: str = ""
    max_score: int = 0
    screenshot_expected: bool = False


class ChoiceGroupQuestion(_CamelModel):
    type: Literal["choicegroup"] = "choicegroup"
    id: Optional[Identifier] = None
    text: str = ""
    max_score: int = 0
    choices: list[Choice] = Field(default_factory=list)


class MultiChoiceGapQuestion(_CamelModel):
    type: Literal["multichoicegap"] = "multichoicegap"
    id: Optional[Identifier] = None
    text: str = ""
    max_score: int = 0
    content: list[GapContent] = Field(default_factory=list)

    @property
    def gaps(self) -> list[Gap]:
        return [item for item in self.content if isinstance(item, Gap)]


class AudioTestQuestion(_CamelModel):
    """Audio check question; never emitted into exam XML."""
    model_config = ConfigDict(extra="allow")

    type: Literal["audiotest"] = "audiotest"


Question = Annotated[
    Union[TextQuestion, ChoiceGroupQuestion, MultiChoiceGapQuestion, AudioTestQuestion],
    Field(discriminator="type"),
]


class Section(_CamelModel):
    title: Optional[str] = None
    cas_forbidden: bool = False
    questions: list[Question] = Field(default_factory=list)

    @property
    def answerable_questions(self) -> list:
        """Questions that appear in exam XML, in content order."""
        return [
            q for q in self.questions
            if q.type != QuestionType.AUDIO_TEST.value
        ]


class ExamContent(_CamelModel):
    title: str = ""
    instruction: str = ""
    sections: list[Section] = Field(default_factory=list)


# ─── Attachment Models ────────────────────────────────────────────────────────


class AttachmentMetadata(_CamelModel):
    """Recorded media properties of an uploaded attachment."""
    model_config = ConfigDict(extra="allow")

    duration: Optional[float] = None
    width: Optional[int] = None
    height: Optional[int] = None


class Attachment(_CamelModel):
    filename: str
    type: AttachmentType
    metadata: Optional[AttachmentMetadata] = None


class ExamRecord(_CamelModel):
    """
    A stored exam as handed to the converter.

    ``content`` feeds the JSON conversion path, ``content_xml`` the
    hand-written XML mastering path.
    """
    exam_uuid: str = ""
    content: Optional[ExamContent] = None
    content_xml: Optional[str] = None
    attachments_mimetype: dict[str, str] = Field(default_factory=dict)
    attachments_metadata: dict[str, AttachmentMetadata] = Field(
        default_factory=dict
    )


# ─── Mastering Models ─────────────────────────────────────────────────────────


class MasteringOptions(_CamelModel):
    throw_on_latex_error: bool = True
    multi_choice_shuffle_secret: Optional[str] = None


class MasteringResult(_CamelModel):
    """One mastered document as returned by the mastering transform."""
    model_config = ConfigDict(extra="ignore")

    xml: str
    attachments: list[Any] = Field(default_factory=list)
    title: Optional[str] = None
    grading_structure: Optional[Any] = None


class ConversionResult(_CamelModel):
    """Output of the JSON content conversion path."""
    xml: str
    attachments: list[Any] = Field(default_factory=list)


class MasteringOutput(_CamelModel):
    """Output of the hand-written XML mastering path."""
    xml: str
    attachments: list[Any] = Field(default_factory=list)
    grading_structure: Optional[Any] = None
    exam_title: Optional[str] = None


# ─── Reference Report ─────────────────────────────────────────────────────────


class ReferenceReport(BaseModel):
    """Cross-reference integrity of a built exam document."""
    attachment_count: int = 0
    reference_count: int = 0
    unresolved_references: list[str] = Field(default_factory=list)
    duplicate_attachments: list[str] = Field(default_factory=list)
    unknown_media_sources: list[str] = Field(default_factory=list)

    @computed_field
    @property
    def is_consistent(self) -> bool:
        return not (
            self.unresolved_references
            or self.duplicate_attachments
            or self.unknown_media_sources
        )
