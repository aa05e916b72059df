"""Natural-language helpers for the intake conversation.

Cheap deterministic heuristics run first; the chat model handles the rest.
Every method is best-effort: when the model is missing, slow or failing the
caller still gets a usable literal.
"""

from langchain_core.language_models import BaseChatModel
from langchain_core.messages import HumanMessage, SystemMessage
from cardio_intake.config.llm_config import get_nlp_model
from cardio_intake.models.symptom import Symptom
from cardio_intake.consultation.retry import EMAIL_PATTERN
from cardio_intake.utils.llm_helpers import invoke_llm_with_timeout
from typing import Dict, List, Optional, Sequence
import logging
import re

logger = logging.getLogger(__name__)

INVALID = "INVALID"
NO_SYMPTOM_FOUND = "NO_SYMPTOM_FOUND"

SYSTEM_PROMPT = (
    "You are a medical intake assistant for a cardiology clinic. "
    "You never give medical advice or a diagnosis. Answer with the requested "
    "text only, no preamble."
)

_NAME_PREFIX = re.compile(r"^(my name is|i am|i'm|name:|name is|call me)\s*", re.I)
_VALID_NAME = re.compile(r"^[a-zA-Z\s]{2,50}$")
_VALID_EMAIL = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

# Words that appear in many catalog names and should not decide a match alone.
_GENERIC_WORDS = {"pain", "discomfort", "feeling", "problem", "problems"}
_STOP_WORDS = {"of", "and", "the", "in", "or", "with", "a"}

_TRANSITIONS = ["Alright, moving on.", "Let's move on.", "Thank you.", "Noted."]


def _words(text: str) -> List[str]:
    return re.findall(r"[a-z]+", text.lower())


class NLPService:
    """Field extraction, symptom matching and phrasing."""

    def __init__(self, llm: Optional[BaseChatModel] = None):
        self.llm = llm

    async def _generate(self, prompt: str, fallback: str) -> str:
        """Ask the model; return ``fallback`` on any failure or empty answer."""
        if self.llm is None:
            return fallback
        try:
            text = await invoke_llm_with_timeout(
                self.llm, [SystemMessage(content=SYSTEM_PROMPT), HumanMessage(content=prompt)]
            )
        except Exception as e:
            logger.warning(f"LLM generation failed, using fallback text: {e}")
            return fallback
        return text or fallback

    # ── Validation ───────────────────────────────────────────────────────

    def is_valid_name(self, name: Optional[str]) -> bool:
        return bool(name) and bool(_VALID_NAME.match(name.strip()))

    def is_valid_email(self, email: Optional[str]) -> bool:
        return bool(email) and bool(_VALID_EMAIL.match(email.strip()))

    # ── Extraction ───────────────────────────────────────────────────────

    async def extract_field(self, text: str, field: str) -> str:
        """
        Extract a patient field from free text.

        Args:
            text: Raw patient message
            field: "name" or "email"

        Returns:
            The extracted value, or INVALID
        """
        clean = text.strip()

        if field == "name":
            name = _NAME_PREFIX.sub("", clean)
            name = re.sub(r"[^a-zA-Z\s]", "", name).strip()
            if self.is_valid_name(name):
                return name
            extracted = await self._generate(
                f'Extract just the person\'s name from: "{clean}". '
                f'Return only the name or "{INVALID}" if no name found.',
                INVALID,
            )
            if extracted != INVALID and self.is_valid_name(extracted):
                return extracted.strip()
            return INVALID

        if field == "email":
            match = EMAIL_PATTERN.search(clean)
            if match:
                return match.group(0)
            extracted = await self._generate(
                f'Extract just the email address from: "{clean}". '
                f'Return only the email or "{INVALID}" if no email found.',
                INVALID,
            )
            return extracted if self.is_valid_email(extracted) else INVALID

        logger.warning(f"Unknown field requested for extraction: {field}")
        return INVALID

    # ── Symptom matching ─────────────────────────────────────────────────

    async def match_symptom(self, text: str, catalog: Sequence[Symptom]) -> str:
        """Catalog name mentioned in ``text``, or NO_SYMPTOM_FOUND."""
        if not catalog:
            return NO_SYMPTOM_FOUND

        by_lower: Dict[str, str] = {s.name.lower(): s.name for s in catalog}

        if self.llm is not None:
            names = ", ".join(s.name for s in catalog)
            answer = await self._generate(
                f'A patient has sent this message: "{text}"\n\n'
                f"Available symptoms in our database: {names}\n\n"
                "Identify if the message mentions any of the available symptoms. "
                "Respond with ONLY the exact symptom name from the list if found, "
                f'or "{NO_SYMPTOM_FOUND}" if none match. Be flexible with synonyms '
                "and the ways patients describe symptoms.",
                "",
            )
            if answer == NO_SYMPTOM_FOUND:
                return NO_SYMPTOM_FOUND
            if answer.lower() in by_lower:
                return by_lower[answer.lower()]
            if answer:
                logger.info(f"LLM symptom answer not in catalog: {answer!r}")

        return self._keyword_match(text, catalog)

    @staticmethod
    def _keyword_match(text: str, catalog: Sequence[Symptom]) -> str:
        message_words = set(_words(text))
        best_name, best_score = NO_SYMPTOM_FOUND, 0.0

        for symptom in catalog:
            score = 0.0
            for word in set(_words(symptom.name)) - _STOP_WORDS:
                if word in message_words:
                    score += 0.5 if word in _GENERIC_WORDS else 1.0
            if score >= 1.0 and score > best_score:
                best_name, best_score = symptom.name, score

        return best_name

    # ── Phrasing ─────────────────────────────────────────────────────────

    async def rephrase_question(self, question: str) -> str:
        return await self._generate(
            "Make this medical question sound conversational and empathetic. "
            "Keep the same medical content, a single concise sentence, no extra "
            f'details. If already concise, return it unchanged.\n\nQuestion: "{question}"',
            question,
        )

    async def transition_phrase(self, index: int, total: int) -> str:
        fallback = _TRANSITIONS[index % len(_TRANSITIONS)]
        return await self._generate(
            "Generate a soft transitional phrase (maximum 5 words) before the next "
            f"question. Progress: question {index} of {total}. Do not use words such "
            'as "great", "amazing" or "wonderful". Examples: Alright, moving on.',
            fallback,
        )

    async def acknowledge_symptom(self, symptom_name: str, has_follow_up: bool) -> str:
        if has_follow_up:
            fallback = (
                f"I'm sorry to hear you're dealing with {symptom_name.lower()}. "
                "I'll ask a few questions to better understand your situation."
            )
            goal = "mentions you need to ask a few questions"
        else:
            fallback = f"Thank you for letting me know about {symptom_name.lower()}."
            goal = "thanks them for the information"
        return await self._generate(
            f'A patient has mentioned they have "{symptom_name}". Write a brief, '
            f"empathetic 1-2 sentence acknowledgment that {goal}.",
            fallback,
        )

    async def completion_message(self, patient_name: Optional[str]) -> str:
        greeting = f"Thank you, {patient_name}!" if patient_name else "Thank you!"
        fallback = (
            f"{greeting} I've collected all your symptom information. "
            "Our cardiologist will review your case."
        )
        named = f' named "{patient_name}"' if patient_name else ""
        return await self._generate(
            f"Write 2 sentences thanking a patient{named} for providing their "
            "symptom information and saying a cardiologist will review their case.",
            fallback,
        )

    async def generic_error_message(self) -> str:
        return await self._generate(
            "Write a brief, polite apology asking the patient to rephrase or try again.",
            "I'm sorry, I didn't quite get that. Could you please rephrase?",
        )


# Global service instance
_nlp_service: Optional[NLPService] = None


def get_nlp_service() -> NLPService:
    """Get or create NLPService instance."""
    global _nlp_service
    if _nlp_service is None:
        _nlp_service = NLPService(llm=get_nlp_model())
    return _nlp_service
