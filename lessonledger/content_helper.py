"""
content_helper.py - Study aids from an external text-generation service

The storefront can show a short summary and a multiple-choice quiz next to a
lesson. Both come from a ContentHelper. The engine never depends on the
result: generate_study_aids() falls back to FALLBACK_SUMMARY and an empty quiz
on any failure, and nothing here touches ledger state.

Implementations:
- StaticContentHelper: fixed content, for tests and offline use
- GeminiContentHelper: Google Gemini via google-generativeai
"""

from __future__ import annotations
from dataclasses import dataclass, field
import json
import logging
import os
from typing import Any, Dict, List, Optional, Protocol, Tuple


logger = logging.getLogger(__name__)


FALLBACK_SUMMARY = "Could not generate summary at this time."

DEFAULT_GEMINI_MODEL = "gemini-2.0-flash"

QUIZ_QUESTION_COUNT = 3


# ============================================================================
# DATA
# ============================================================================

@dataclass(frozen=True, slots=True)
class QuizItem:
    """One multiple-choice question; answer_index points into options."""
    question: str
    options: Tuple[str, ...]
    answer_index: int

    def __post_init__(self):
        if not isinstance(self.question, str) or not self.question.strip():
            raise ValueError("QuizItem question cannot be empty")
        options = tuple(self.options)
        if len(options) < 2:
            raise ValueError(f"QuizItem needs at least 2 options, got {len(options)}")
        if not all(isinstance(o, str) for o in options):
            raise ValueError("QuizItem options must be strings")
        object.__setattr__(self, 'options', options)
        if isinstance(self.answer_index, bool) or not isinstance(self.answer_index, int):
            raise ValueError(f"QuizItem answer_index must be an integer, got {self.answer_index!r}")
        if not 0 <= self.answer_index < len(options):
            raise ValueError(
                f"QuizItem answer_index {self.answer_index} out of range for {len(options)} options"
            )

    @property
    def answer(self) -> str:
        return self.options[self.answer_index]


@dataclass(frozen=True, slots=True)
class StudyAids:
    summary: str
    quiz: Tuple[QuizItem, ...] = field(default_factory=tuple)

    @property
    def is_fallback(self) -> bool:
        return self.summary == FALLBACK_SUMMARY and not self.quiz


# ============================================================================
# PROTOCOL
# ============================================================================

class ContentHelper(Protocol):
    """
    Protocol for study-aid generators.

    Implementations may raise on any failure; callers go through
    generate_study_aids(), which absorbs errors.
    """

    def summarize(self, title: str, description: str) -> str:
        ...

    def quiz(self, title: str, description: str) -> List[QuizItem]:
        ...


class StaticContentHelper:
    """
    Serves the same summary and quiz for every lesson.

    Example:
        helper = StaticContentHelper(
            summary="Derivatives measure change.",
            quiz=[QuizItem("d/dx x^2?", ("x", "2x"), 1)],
        )
    """

    def __init__(self, summary: str = "", quiz: Optional[List[QuizItem]] = None):
        self._summary = summary
        self._quiz = list(quiz or [])

    def summarize(self, title: str, description: str) -> str:
        return self._summary or f"{title}: {description}"

    def quiz(self, title: str, description: str) -> List[QuizItem]:
        return list(self._quiz)


# ============================================================================
# QUIZ PARSING
# ============================================================================

def _strip_code_fence(text: str) -> str:
    """Remove a surrounding Markdown code fence (optionally tagged json)."""
    text = text.strip()
    if text.startswith("```"):
        first_newline = text.find("\n")
        text = text[first_newline + 1:] if first_newline != -1 else text[3:]
        if text.rstrip().endswith("```"):
            text = text.rstrip()[:-3]
    return text.strip()


def _quiz_item_from_dict(raw: Dict[str, Any]) -> QuizItem:
    return QuizItem(
        question=raw['question'],
        options=tuple(raw['options']),
        answer_index=raw['answerIndex'] if 'answerIndex' in raw else raw['answer_index'],
    )


def parse_quiz(text: str) -> List[QuizItem]:
    """
    Parse a model response into quiz items.

    Accepts a JSON array of {"question", "options", "answerIndex"} objects,
    optionally wrapped in a Markdown code fence.

    Raises:
        ValueError: If the text is not a JSON array of valid items.
    """
    try:
        data = json.loads(_strip_code_fence(text))
    except json.JSONDecodeError as e:
        raise ValueError(f"Quiz response is not valid JSON: {e}") from e
    if not isinstance(data, list):
        raise ValueError("Quiz response must be a JSON array")
    try:
        return [_quiz_item_from_dict(item) for item in data]
    except (KeyError, TypeError) as e:
        raise ValueError(f"Malformed quiz item: {e!r}") from e


# ============================================================================
# GEMINI
# ============================================================================

class GeminiContentHelper:
    """
    Study aids from Google Gemini.

    The API key defaults to the GEMINI_API_KEY environment variable. The
    client library is imported on first use, so constructing the helper never
    touches the network.
    """

    def __init__(self, api_key: Optional[str] = None, model_name: str = DEFAULT_GEMINI_MODEL):
        self.api_key = api_key or os.environ.get("GEMINI_API_KEY")
        self.model_name = model_name
        self._model = None

    def _get_model(self):
        if self._model is None:
            if not self.api_key:
                raise RuntimeError("GEMINI_API_KEY is not set")
            import google.generativeai as genai
            genai.configure(api_key=self.api_key)
            self._model = genai.GenerativeModel(model_name=self.model_name)
        return self._model

    def summarize(self, title: str, description: str) -> str:
        prompt = (
            "Summarize this lesson for a high school student in under 100 words, "
            "in an encouraging tone.\n"
            f"Title: {title}\n"
            f"Description: {description}"
        )
        response = self._get_model().generate_content(prompt)
        text = (response.text or "").strip()
        if not text:
            raise ValueError("Empty summary from model")
        return text

    def quiz(self, title: str, description: str) -> List[QuizItem]:
        prompt = (
            f"Write a {QUIZ_QUESTION_COUNT}-question multiple choice quiz about this lesson.\n"
            f"Title: {title}\n"
            f"Description: {description}\n"
            'Answer with a JSON array of objects with keys "question" (string), '
            '"options" (array of 4 strings) and "answerIndex" (0-based integer).'
        )
        response = self._get_model().generate_content(
            prompt,
            generation_config={"response_mime_type": "application/json"},
        )
        return parse_quiz(response.text)

    def __repr__(self) -> str:
        return f"GeminiContentHelper(model={self.model_name!r})"


# ============================================================================
# BEST-EFFORT ENTRY POINT
# ============================================================================

def generate_study_aids(
    helper: Optional[ContentHelper],
    title: str,
    description: str,
) -> StudyAids:
    """
    Ask the helper for a summary and a quiz, never raising.

    Summary and quiz fail independently: a broken quiz still returns the
    summary, and the other way round.
    """
    if helper is None:
        return StudyAids(summary=FALLBACK_SUMMARY, quiz=())

    try:
        summary = helper.summarize(title, description)
    except Exception as e:
        logger.warning("Summary generation failed for %r: %s", title, e)
        summary = FALLBACK_SUMMARY

    try:
        quiz = tuple(helper.quiz(title, description))
    except Exception as e:
        logger.warning("Quiz generation failed for %r: %s", title, e)
        quiz = ()

    return StudyAids(summary=summary or FALLBACK_SUMMARY, quiz=quiz)
