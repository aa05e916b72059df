"""Bounded chat-model calls that hand back plain text."""

import asyncio
import logging
from typing import List, Optional
from langchain_core.messages import BaseMessage
from langchain_core.language_models.chat_models import BaseChatModel
from cardio_intake.config.settings import settings

logger = logging.getLogger(__name__)

QUOTES = "\"'`"


def response_text(response) -> str:
    """Flatten a chat response to a single unquoted line of text."""
    content = getattr(response, "content", response)
    if isinstance(content, list):
        content = " ".join(
            part.get("text", "") if isinstance(part, dict) else str(part)
            for part in content
        )
    return str(content).strip().strip(QUOTES).strip()


async def invoke_llm_with_timeout(
    llm: BaseChatModel,
    messages: List[BaseMessage],
    timeout: Optional[float] = None,
) -> str:
    """
    Send ``messages`` to ``llm`` and return the reply text.

    Args:
        llm: Chat model to call
        messages: Prompt messages
        timeout: Seconds to wait, settings.llm_invoke_timeout when omitted

    Raises:
        asyncio.TimeoutError: The model did not reply within ``timeout``
    """
    limit = settings.llm_invoke_timeout if timeout is None else timeout
    logger.debug(f"📤 Calling chat model ({len(messages)} messages, {limit}s timeout)")

    try:
        response = await asyncio.wait_for(llm.ainvoke(messages), timeout=limit)
    except asyncio.TimeoutError:
        logger.error(f"⏱️ Chat model gave no answer within {limit}s")
        raise
    except Exception as e:
        logger.error(f"❌ Chat model call failed: {e}")
        raise

    return response_text(response)
