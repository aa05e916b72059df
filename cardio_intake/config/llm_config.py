"""LLM configuration for GitHub Models API.

A single small instruct model is enough for the intake assistant: it only
extracts fields, matches symptoms against the catalog and softens wording.
"""

from langchain_openai import ChatOpenAI
from langchain_core.language_models import BaseChatModel
from cardio_intake.config.settings import settings
from typing import Optional
from pydantic import SecretStr
import logging

logger = logging.getLogger(__name__)

_nlp_model: Optional[BaseChatModel] = None


def _create_model(model_name: str) -> BaseChatModel:
    """Instantiate a ChatOpenAI client pointed at the GitHub Models endpoint."""
    logger.info(f"Creating GitHub Models client: {model_name}")
    return ChatOpenAI(
        base_url=settings.github_models_endpoint,
        api_key=SecretStr(settings.github_token or ""),
        model=model_name,
        temperature=settings.model_temperature,
        max_completion_tokens=settings.model_max_tokens,
    )


def get_nlp_model() -> Optional[BaseChatModel]:
    """
    Return the shared chat model, or None when no token is configured.

    Callers treat None as "heuristics only".
    """
    global _nlp_model

    if not settings.github_token:
        logger.warning("GITHUB_TOKEN not set - NLP runs in heuristic-only mode")
        return None

    if _nlp_model is None:
        _nlp_model = _create_model(settings.model_name)
    return _nlp_model
