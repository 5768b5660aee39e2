from typing import Dict, List, Optional, Protocol
import logging

import openai
from openai import OpenAI

from docchat.config import settings
from docchat.exceptions import ModelRequestRejected, TransientServiceFailure

logger = logging.getLogger(__name__)

TRANSIENT_ERRORS = (
    openai.APITimeoutError,
    openai.APIConnectionError,
    openai.RateLimitError,
    openai.InternalServerError,
)


class LanguageModel(Protocol):
    def complete(
        self,
        model: str,
        messages: List[Dict[str, str]],
        temperature: float,
        max_tokens: int,
        timeout: Optional[float] = None,
    ) -> str: ...


class OpenAIChatModel:
    """Chat completions over the OpenAI SDK, errors mapped to the chat error kinds"""

    def __init__(self, client: Optional[OpenAI] = None, timeout: Optional[float] = None):
        self.timeout = timeout or settings.OPENAI_TIMEOUT_SECONDS
        self._client = client

    @property
    def client(self) -> OpenAI:
        if self._client is None:
            self._client = OpenAI(api_key=settings.OPENAI_API_KEY, max_retries=2)
        return self._client

    def complete(
        self,
        model: str,
        messages: List[Dict[str, str]],
        temperature: float,
        max_tokens: int,
        timeout: Optional[float] = None,
    ) -> str:
        try:
            response = self.client.chat.completions.create(
                model=model,
                messages=messages,
                temperature=temperature,
                max_tokens=max_tokens,
                timeout=timeout or self.timeout,
            )
        except TRANSIENT_ERRORS as e:
            logger.warning(f"OpenAI temporarily unavailable: {str(e)}")
            raise TransientServiceFailure("AI service temporarily unavailable")
        except openai.APIStatusError as e:
            logger.error(f"OpenAI rejected the request: {str(e)}")
            raise ModelRequestRejected(f"AI service rejected the request: {e.message}")
        except openai.OpenAIError as e:
            logger.error(f"OpenAI client error: {str(e)}")
            raise TransientServiceFailure("AI service temporarily unavailable")

        content = response.choices[0].message.content
        if not content:
            logger.warning("OpenAI returned an empty completion")
            raise TransientServiceFailure("AI service returned an empty response")
        return content.strip()
