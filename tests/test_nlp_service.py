"""NLP helpers in heuristic-only mode and with a scripted chat model."""

import pytest
from langchain_core.language_models.fake_chat_models import FakeListChatModel

from cardio_intake.models.symptom import Symptom
from cardio_intake.services.nlp_service import INVALID, NO_SYMPTOM_FOUND, NLPService

CATALOG = [
    Symptom(name="Chest Pain / Discomfort"),
    Symptom(name="Shortness of Breath (Dyspnea)"),
    Symptom(name="Palpitations"),
]


class BrokenModel:
    async def ainvoke(self, messages):
        raise ConnectionError("models endpoint unreachable")


@pytest.fixture
def heuristic() -> NLPService:
    return NLPService(llm=None)


class TestExtraction:
    async def test_name_prefix_is_stripped(self, heuristic):
        assert await heuristic.extract_field("My name is John Smith", "name") == "John Smith"
        assert await heuristic.extract_field("i'm Maria", "name") == "Maria"

    async def test_unusable_name_is_invalid(self, heuristic):
        assert await heuristic.extract_field("!!", "name") == INVALID

    async def test_email(self, heuristic):
        assert await heuristic.extract_field("reach me at bob@example.org thanks", "email") == (
            "bob@example.org"
        )
        assert await heuristic.extract_field("I'd rather not", "email") == INVALID

    async def test_model_fills_in_name(self):
        nlp = NLPService(llm=FakeListChatModel(responses=["Jay"]))
        assert await nlp.extract_field("I'm J.", "name") == "Jay"

    async def test_model_invalid_answer_is_rejected(self):
        nlp = NLPService(llm=FakeListChatModel(responses=["INVALID"]))
        assert await nlp.extract_field("?", "name") == INVALID

    def test_validators(self, heuristic):
        assert heuristic.is_valid_name("Ann Lee")
        assert not heuristic.is_valid_name("A")
        assert heuristic.is_valid_email("ann@lee.io")
        assert not heuristic.is_valid_email("ann@lee")


class TestSymptomMatching:
    async def test_keyword_match(self, heuristic):
        assert await heuristic.match_symptom("I have chest pain", CATALOG) == (
            "Chest Pain / Discomfort"
        )
        assert await heuristic.match_symptom("I get shortness of breath", CATALOG) == (
            "Shortness of Breath (Dyspnea)"
        )

    async def test_generic_word_alone_does_not_match(self, heuristic):
        assert await heuristic.match_symptom("pain in my stomach", CATALOG) == NO_SYMPTOM_FOUND

    async def test_empty_catalog(self, heuristic):
        assert await heuristic.match_symptom("chest pain", []) == NO_SYMPTOM_FOUND

    async def test_model_answer_mapped_to_catalog_name(self):
        nlp = NLPService(llm=FakeListChatModel(responses=["palpitations"]))
        assert await nlp.match_symptom("my heart is fluttering", CATALOG) == "Palpitations"

    async def test_off_catalog_model_answer_falls_back_to_keywords(self):
        nlp = NLPService(llm=FakeListChatModel(responses=["Angina"]))
        assert await nlp.match_symptom("chest pain again", CATALOG) == "Chest Pain / Discomfort"


class TestPhrasing:
    async def test_literal_fallbacks_without_model(self, heuristic):
        assert await heuristic.rephrase_question("When did it start?") == "When did it start?"
        assert "Palpitations".lower() in await heuristic.acknowledge_symptom("Palpitations", True)
        assert (await heuristic.completion_message("Ann")).startswith("Thank you, Ann!")

    async def test_failing_model_uses_fallback(self):
        nlp = NLPService(llm=BrokenModel())
        assert await nlp.rephrase_question("Any dizziness?") == "Any dizziness?"
        assert await nlp.extract_field("?", "email") == INVALID
