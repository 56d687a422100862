"""Low-latency generalist backend served by Groq."""

import os

import groq
from groq import AsyncGroq

from .base import Backend, BackendError, BackendErrorKind, Completion


class GroqBackend(Backend):
    """Fast backend using Groq chat completions."""

    provider = "groq"
    endpoint = "chat.completions"

    def __init__(
        self,
        model: str = "llama-3.3-70b-versatile",
        client: AsyncGroq | None = None,
        label: str = "Quick Analysis",
    ) -> None:
        super().__init__(model, label)
        self.client = client or AsyncGroq(api_key=os.getenv("GROQ_API_KEY"))

    async def _complete(
        self,
        prompt: str,
        max_tokens: int,
        temperature: float,
        system: str | None,
    ) -> Completion:
        messages = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})

        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=messages,
                max_tokens=max_tokens,
                temperature=temperature,
            )
        except groq.RateLimitError as e:
            raise BackendError(self.name, BackendErrorKind.RATE_LIMIT, str(e)) from e
        except groq.APITimeoutError as e:
            raise BackendError(self.name, BackendErrorKind.TIMEOUT, str(e)) from e
        except groq.APIError as e:
            raise BackendError(self.name, BackendErrorKind.UNAVAILABLE, str(e)) from e

        choice = response.choices[0]
        usage = {}
        if getattr(response, "usage", None) is not None:
            usage = {
                "prompt_tokens": response.usage.prompt_tokens,
                "completion_tokens": response.usage.completion_tokens,
            }

        return Completion(
            text=choice.message.content or "",
            usage=usage,
            finish_reason=choice.finish_reason,
        )
