"""
Quiz document model.

Document, Question and Answer are frozen value types: editing produces new
instances via dataclasses.replace (or the helpers below), never in-place
mutation. `id` fields are session-local identities for the editing layer;
the identifier that reaches QTI XML is metadata["canvas_identifier"].
"""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Dict, Optional, Tuple

from qtiedit.common import (
    new_answer_identifier,
    new_internal_id,
    new_question_identifier,
    preview,
)

CANVAS_IDENTIFIER = "canvas_identifier"
CANVAS_TITLE = "canvas_title"


class QuestionType(str, Enum):
    MULTIPLE_CHOICE = "multiple_choice_question"
    TRUE_FALSE = "true_false_question"
    ESSAY = "essay_question"
    FILL_IN_BLANK = "fill_in_multiple_blanks_question"
    MATCHING = "matching_question"
    MULTIPLE_ANSWERS = "multiple_answers_question"
    NUMERICAL = "numerical_question"
    OTHER = "other"

    @classmethod
    def from_canvas(cls, value: Optional[str]) -> "QuestionType":
        try:
            return cls((value or "").strip())
        except ValueError:
            return cls.OTHER

    @property
    def display_name(self) -> str:
        return _DISPLAY_NAMES[self]

    @property
    def is_choice(self) -> bool:
        return self is not QuestionType.ESSAY


_DISPLAY_NAMES = {
    QuestionType.MULTIPLE_CHOICE: "Multiple Choice",
    QuestionType.TRUE_FALSE: "True/False",
    QuestionType.ESSAY: "Essay",
    QuestionType.FILL_IN_BLANK: "Fill in the Blank",
    QuestionType.MATCHING: "Matching",
    QuestionType.MULTIPLE_ANSWERS: "Multiple Answers",
    QuestionType.NUMERICAL: "Numerical",
    QuestionType.OTHER: "Other",
}


@dataclass(frozen=True)
class Answer:
    text: str = ""
    is_correct: bool = False
    feedback: str = ""
    weight: Optional[float] = None
    metadata: Dict[str, str] = field(default_factory=dict)
    id: str = field(default_factory=new_internal_id)

    def __post_init__(self):
        if self.weight is None:
            object.__setattr__(self, "weight", 100.0 if self.is_correct else 0.0)
        md = dict(self.metadata)
        if not md.get(CANVAS_IDENTIFIER):
            md[CANVAS_IDENTIFIER] = new_answer_identifier()
        object.__setattr__(self, "metadata", md)

    @property
    def canvas_identifier(self) -> str:
        return self.metadata[CANVAS_IDENTIFIER]

    def duplicate(self, preserve_canvas_identifier: bool = False) -> "Answer":
        md = dict(self.metadata)
        if not preserve_canvas_identifier:
            md.pop(CANVAS_IDENTIFIER, None)
        return replace(self, metadata=md, id=new_internal_id())


@dataclass(frozen=True)
class Question:
    type: QuestionType = QuestionType.MULTIPLE_CHOICE
    question_text: str = ""
    points: float = 1.0
    answers: Tuple[Answer, ...] = ()
    general_feedback: str = ""
    metadata: Dict[str, str] = field(default_factory=dict)
    id: str = field(default_factory=new_internal_id)

    def __post_init__(self):
        object.__setattr__(self, "answers", tuple(self.answers))
        object.__setattr__(self, "points", float(self.points))
        md = dict(self.metadata)
        if not md.get(CANVAS_IDENTIFIER):
            md[CANVAS_IDENTIFIER] = new_question_identifier()
        object.__setattr__(self, "metadata", md)

    @property
    def canvas_identifier(self) -> str:
        return self.metadata[CANVAS_IDENTIFIER]

    @property
    def title(self) -> str:
        return self.metadata.get(CANVAS_TITLE, "")

    @property
    def correct_answers(self) -> Tuple[Answer, ...]:
        return tuple(a for a in self.answers if a.is_correct)

    @property
    def has_correct_answer(self) -> bool:
        return bool(self.correct_answers)

    def find_answer(self, answer_id: str) -> Optional[Answer]:
        return next((a for a in self.answers if a.id == answer_id), None)

    def preview_text(self, max_length: int = 100) -> str:
        return preview(self.question_text, max_length, empty="(Empty question)")

    def duplicate(self, preserve_canvas_identifier: bool = False) -> "Question":
        """Deep copy with fresh internal ids; Canvas identifiers are dropped unless preserved."""
        md = dict(self.metadata)
        if not preserve_canvas_identifier:
            md.pop(CANVAS_IDENTIFIER, None)
        answers = tuple(a.duplicate(preserve_canvas_identifier) for a in self.answers)
        return replace(self, answers=answers, metadata=md, id=new_internal_id())


@dataclass(frozen=True)
class Document:
    title: str = "Untitled Quiz"
    description: str = ""
    questions: Tuple[Question, ...] = ()
    metadata: Dict[str, str] = field(default_factory=dict)
    id: str = field(default_factory=new_internal_id)

    def __post_init__(self):
        object.__setattr__(self, "questions", tuple(self.questions))
        object.__setattr__(self, "metadata", dict(self.metadata))

    @classmethod
    def empty(cls) -> "Document":
        return cls()

    @property
    def total_points(self) -> float:
        return sum(q.points for q in self.questions)

    def find_question(self, question_id: str) -> Optional[Question]:
        return next((q for q in self.questions if q.id == question_id), None)

    def replace_question(self, question: Question) -> "Document":
        """Return a copy with the question sharing `question.id` swapped out."""
        questions = tuple(question if q.id == question.id else q for q in self.questions)
        return replace(self, questions=questions)
