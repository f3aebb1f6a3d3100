from __future__ import annotations

import copy

import pytest

from examxml.models import ExamContent, ExamRecord, MasteringResult

EXAM_CONTENT = {
    "title": "Koe",
    "instruction": "Ohje",
    "sections": [
        {
            "title": "Osa 1",
            "casForbidden": True,
            "questions": [
                {
                    "type": "text",
                    "id": 11,
                    "text": "Kirjoita",
                    "maxScore": 6,
                    "screenshotExpected": False,
                },
                {"type": "audiotest", "id": 99},
                {
                    "type": "choicegroup",
                    "text": "Valitse",
                    "maxScore": 10,
                    "choices": [
                        {
                            "id": 21,
                            "text": "Onko?",
                            "breakAfter": True,
                            "options": [
                                {"id": 211, "text": "kyllä", "correct": True},
                                {"id": 212, "text": "ei", "correct": False},
                            ],
                        },
                        {
                            "id": 22,
                            "text": "Entä?",
                            "options": [
                                {"id": 221, "text": "kyllä", "correct": False},
                                {"id": 222, "text": "ei", "correct": True},
                            ],
                        },
                        {
                            "id": 23,
                            "text": "Miksi?",
                            "options": [
                                {"id": 231, "text": "siksi", "correct": True},
                                {"id": 232, "text": "muuten", "correct": False},
                            ],
                        },
                    ],
                },
            ],
        },
        {
            "questions": [
                {
                    "type": "multichoicegap",
                    "text": "Täydennä",
                    "maxScore": 5,
                    "content": [
                        {"type": "text", "text": "Kissa on"},
                        {
                            "type": "gap",
                            "id": 31,
                            "options": [
                                {"id": 311, "text": "eläin", "correct": True},
                                {"id": 312, "text": "kasvi"},
                            ],
                        },
                        {"type": "text", "text": "ja koira on"},
                        {
                            "type": "gap",
                            "id": 32,
                            "options": [
                                {"id": 321, "text": "myös", "correct": True},
                                {"id": 322, "text": "ei"},
                            ],
                        },
                    ],
                },
                {
                    "type": "text",
                    "id": 12,
                    "text": "Selitä",
                    "maxScore": 4,
                    "screenshotExpected": True,
                },
            ],
        },
    ],
}


def build_exam_record_data(**overrides) -> dict:
    """A stored exam record with JSON content and no attachments."""
    data = {
        "examUuid": "exam-1",
        "content": copy.deepcopy(EXAM_CONTENT),
        "attachmentsMimetype": {},
        "attachmentsMetadata": {},
    }
    data.update(overrides)
    return data


class IdentityMastering:
    """Mastering stub that returns its input unchanged and records calls."""

    def __init__(self, results_per_call: int = 1, title: str = "Koe"):
        self.results_per_call = results_per_call
        self.title = title
        self.calls: list[dict] = []

    def __call__(self, xml, exam_id_supplier, resolve_media_metadata, options):
        self.calls.append({
            "xml": xml,
            "exam_id": exam_id_supplier(),
            "resolve": resolve_media_metadata,
            "options": options,
        })
        return [
            MasteringResult(
                xml=xml,
                attachments=[{"filename": "kuva.png"}],
                title=self.title,
                grading_structure={"questions": []},
            )
            for _ in range(self.results_per_call)
        ]


@pytest.fixture
def exam_content() -> ExamContent:
    return ExamContent.model_validate(copy.deepcopy(EXAM_CONTENT))


@pytest.fixture
def exam_record() -> ExamRecord:
    return ExamRecord.model_validate(build_exam_record_data())


@pytest.fixture
def identity_mastering() -> IdentityMastering:
    return IdentityMastering()
