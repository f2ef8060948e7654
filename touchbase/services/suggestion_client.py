"""
Suggestion client for the Groq chat completions endpoint.

Thin adapter: one prompt in, one completion out. The SDK's own retries are
disabled so retry and backoff live entirely in the batch processor; this
module only classifies failures as transient or permanent.
"""

import openai
from openai import AsyncOpenAI

from touchbase.config import Settings, settings
from touchbase.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

TRANSIENT_STATUS_CODES = frozenset({429, 503})

SYSTEM_MESSAGE = (
    "You are a relationship manager assistant helping users maintain meaningful connections."
)


class SuggestionClientError(Exception):
    """Base exception for suggestion client errors."""

    def __init__(self, message: str, status_code: int | None = None, recoverable: bool = False):
        super().__init__(message)
        self.status_code = status_code
        self.recoverable = recoverable


class TransientSuggestionError(SuggestionClientError):
    """429, 503, timeouts and connection failures. Worth retrying."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message, status_code=status_code, recoverable=True)


class PermanentSuggestionError(SuggestionClientError):
    """Any other non-2xx response or a malformed body. Not retried within a run."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message, status_code=status_code, recoverable=False)


class SuggestionClient:
    """Stateless wrapper: generate(prompt) -> text or a classified exception."""

    def __init__(self, config: Settings = settings, client: AsyncOpenAI | None = None):
        self.config = config
        self._client = client

    def _get_client(self) -> AsyncOpenAI:
        if self._client is None:
            self.config.require("GROQ_API_KEY")
            self._client = AsyncOpenAI(
                api_key=self.config.GROQ_API_KEY,
                base_url=self.config.GROQ_BASE_URL,
                timeout=self.config.SUGGESTION_TIMEOUT_SECONDS,
                max_retries=0,
            )
            logger.info(
                "Suggestion client initialized",
                model=self.config.SUGGESTION_MODEL,
                base_url=self.config.GROQ_BASE_URL,
            )
        return self._client

    async def generate(self, prompt: str) -> str:
        """
        Request a completion for prompt.

        Raises:
            TransientSuggestionError: rate limited, unavailable, or timed out
            PermanentSuggestionError: any other failure
        """
        client = self._get_client()
        try:
            response = await client.chat.completions.create(
                model=self.config.SUGGESTION_MODEL,
                messages=[
                    {"role": "system", "content": SYSTEM_MESSAGE},
                    {"role": "user", "content": prompt},
                ],
                max_tokens=self.config.SUGGESTION_MAX_TOKENS,
                temperature=self.config.SUGGESTION_TEMPERATURE,
            )
        except openai.APITimeoutError as e:
            raise TransientSuggestionError(f"Suggestion request timed out: {e}") from e
        except openai.APIConnectionError as e:
            raise TransientSuggestionError(f"Suggestion endpoint unreachable: {e}") from e
        except openai.APIStatusError as e:
            if e.status_code in TRANSIENT_STATUS_CODES:
                raise TransientSuggestionError(
                    f"Suggestion endpoint returned {e.status_code}: {e.message}",
                    status_code=e.status_code,
                ) from e
            raise PermanentSuggestionError(
                f"Suggestion endpoint returned {e.status_code}: {e.message}",
                status_code=e.status_code,
            ) from e
        except openai.OpenAIError as e:
            raise PermanentSuggestionError(f"Suggestion request failed: {e}") from e

        if not response.choices or not response.choices[0].message.content:
            raise PermanentSuggestionError("Invalid response structure from suggestion endpoint")

        content = response.choices[0].message.content.strip()
        logger.debug(
            "Suggestion generated",
            response_length=len(content),
            usage_tokens=response.usage.total_tokens if response.usage else 0,
        )
        return content


suggestion_client = SuggestionClient()
