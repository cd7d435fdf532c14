"""Question and category generation through an LLM."""
import logging
import uuid
from typing import Optional, Protocol

from pydantic import ValidationError

from ..config import Settings
from ..schemas import Question
from .llm_client import call_llm_json

logger = logging.getLogger(__name__)

QUESTION_SYSTEM = (
    "You write professional skill assessment questions. "
    "Respond with JSON only, no commentary."
)

QUESTION_PROMPT = """Create exactly {count} multiple-choice questions testing practical knowledge of:
{main} > {narrow} > {specific}

Mix difficulty from fundamentals to senior-level depth. Each question has exactly 4 options
and one correct option.

Return a JSON array of objects with keys:
  "question": string,
  "options": array of 4 strings,
  "correct_answer": integer index 0-3 of the correct option
"""

CATEGORY_PROMPT = """List 8 to 12 {kind} for a professional skills certification platform{parent}.
Return a JSON array of short strings only."""

_CATEGORY_KINDS = {
    1: "broad professional fields",
    2: "narrower sub-fields",
    3: "specific technologies, tools or practices",
}


class QuestionSourceError(Exception):
    pass


class QuestionSource(Protocol):
    def generate_questions(self, main: str, narrow: str, specific: str) -> list[Question]: ...

    def generate_categories(self, level: int, parent: Optional[str] = None) -> list[str]: ...


class LLMQuestionSource:
    def __init__(self, settings: Settings):
        self.settings = settings

    def generate_questions(self, main: str, narrow: str, specific: str) -> list[Question]:
        count = self.settings.question_count
        prompt = QUESTION_PROMPT.format(count=count, main=main, narrow=narrow, specific=specific)
        raw = call_llm_json(prompt, self.settings, system=QUESTION_SYSTEM)
        if not isinstance(raw, list):
            raise QuestionSourceError("question source did not return a list")
        try:
            questions = [
                Question(
                    id=f"q{i + 1}-{uuid.uuid4().hex[:8]}",
                    question=item["question"],
                    options=item["options"],
                    correct_answer=int(item["correct_answer"]),
                    points=self.settings.points_per_question,
                )
                for i, item in enumerate(raw)
            ]
        except (KeyError, TypeError, ValueError, ValidationError) as e:
            raise QuestionSourceError(f"malformed question: {e}") from e
        if len(questions) != count:
            raise QuestionSourceError(f"expected {count} questions, got {len(questions)}")
        return questions

    def generate_categories(self, level: int, parent: Optional[str] = None) -> list[str]:
        parent_text = f" within '{parent}'" if parent else ""
        prompt = CATEGORY_PROMPT.format(kind=_CATEGORY_KINDS[level], parent=parent_text)
        raw = call_llm_json(prompt, self.settings)
        if not isinstance(raw, list):
            raise QuestionSourceError("category source did not return a list")
        return [str(c).strip() for c in raw if str(c).strip()]
