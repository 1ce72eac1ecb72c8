"""Data returned by the slide service's plain endpoints."""

from __future__ import annotations

from dataclasses import dataclass

from pydantic import BaseModel, ConfigDict, Field

from slidebridge.codec.annotations import parse_color
from slidebridge.tma.grid import SlideDimensions

# Question types whose answers are annotations.
ANNOTATION_QUESTION_PREFIX = "Anno"
SHAPE_QUESTION_TYPE = "AnnoShapes"


class SlideMetadata(BaseModel, frozen=True):
    """Subset of ``SlideScoreMetadata.json`` used for coordinate transforms.

    Unknown keys (tile sizes, level lists, background color) are ignored.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    width: int = Field(..., alias="Level0Width", gt=0)
    height: int = Field(..., alias="Level0Height", gt=0)
    mpp_x: float = Field(default=0.0, alias="MppX")
    mpp_y: float = Field(default=0.0, alias="MppY")
    file_name: str = Field(default="", alias="FileName")

    @property
    def mpp(self) -> float | None:
        """Averaged microns per pixel, None when the slide has no calibration."""
        if self.mpp_x <= 0 or self.mpp_y <= 0:
            return None
        return (self.mpp_x + self.mpp_y) / 2

    @property
    def dimensions(self) -> SlideDimensions:
        return SlideDimensions(width=self.width, height=self.height, mpp=self.mpp)


@dataclass(frozen=True)
class Answer:
    """One row of the ``Answers`` listing."""

    question: str
    email: str
    value: str
    color: int | None = None


@dataclass(frozen=True)
class Question:
    """One row of the ``Questions`` listing."""

    name: str
    kind: str

    @property
    def is_annotation(self) -> bool:
        return self.kind.startswith(ANNOTATION_QUESTION_PREFIX)

    @property
    def is_shape(self) -> bool:
        return self.kind == SHAPE_QUESTION_TYPE


def parse_answers(
    text: str,
    *,
    question: str | None = None,
    email: str | None = None,
) -> list[Answer]:
    """Parse ``question;email;value;color`` lines.

    ``question`` and ``email`` filter case-insensitively. Colors not
    written as ``#rrggbb`` are dropped.

    Example:
        >>> parse_answers("Tumor;a@b.org;[];#ff0000")
        [Answer(question='Tumor', email='a@b.org', value='[]', color=16711680)]
    """
    answers: list[Answer] = []
    for line in text.splitlines():
        if not line.strip():
            continue
        terms = line.split(";")
        if len(terms) < 2:
            continue
        answer_question, answer_email = terms[0], terms[1]
        if question is not None and answer_question.casefold() != question.casefold():
            continue
        if email is not None and answer_email.casefold() != email.casefold():
            continue
        value = terms[2] if len(terms) > 2 else ""
        color = parse_color(terms[3]) if len(terms) > 3 else None
        answers.append(
            Answer(question=answer_question, email=answer_email, value=value, color=color)
        )
    return answers


def parse_questions(text: str) -> list[Question]:
    """Parse ``name;type`` lines; lines without a type are skipped."""
    questions: list[Question] = []
    for line in text.splitlines():
        terms = line.split(";")
        if len(terms) < 2 or not terms[0]:
            continue
        questions.append(Question(name=terms[0], kind=terms[1]))
    return questions
