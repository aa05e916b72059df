"""Symptom catalog reference data."""

from pydantic import BaseModel, Field
from typing import Dict, List


class FollowUpQuestion(BaseModel):
    """A single clarifying question tied to a symptom category."""

    category: str
    question: str


class Symptom(BaseModel):
    """Catalog entry: a symptom with its follow-up questions per category.

    ``follow_up_questions`` keeps the category declaration order of the
    dataset; that order is also the asking order.
    """

    name: str
    follow_up_questions: Dict[str, List[str]] = Field(default_factory=dict)

    def flatten_questions(self) -> List[FollowUpQuestion]:
        """Category order first, then within-category order."""
        return [
            FollowUpQuestion(category=category, question=question)
            for category, questions in self.follow_up_questions.items()
            for question in questions
        ]
