"""Client for the slide service's endpoints and answer routing."""

from slidebridge.client.http import SlideScoreClient
from slidebridge.client.router import AnswerRouter, SubmitResult
from slidebridge.client.types import Answer, Question, SlideMetadata

__all__ = [
    "Answer",
    "AnswerRouter",
    "Question",
    "SlideMetadata",
    "SlideScoreClient",
    "SubmitResult",
]
