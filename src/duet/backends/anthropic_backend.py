"""High-capability reasoning backend served by Anthropic."""

import os

import anthropic
from anthropic import AsyncAnthropic

from .base import Backend, BackendError, BackendErrorKind, Completion


class AnthropicBackend(Backend):
    """Reasoning backend using the Anthropic Messages API."""

    provider = "anthropic"
    endpoint = "messages"

    def __init__(
        self,
        model: str = "claude-sonnet-4-20250514",
        client: AsyncAnthropic | None = None,
        label: str = "Deep Analysis",
    ) -> None:
        super().__init__(model, label)
        self.client = client or AsyncAnthropic(api_key=os.getenv("ANTHROPIC_API_KEY"))

    async def _complete(
        self,
        prompt: str,
        max_tokens: int,
        temperature: float,
        system: str | None,
    ) -> Completion:
        kwargs = {
            "model": self.model,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "messages": [{"role": "user", "content": prompt}],
        }
        if system:
            kwargs["system"] = system

        try:
            response = await self.client.messages.create(**kwargs)
        except anthropic.RateLimitError as e:
            raise BackendError(self.name, BackendErrorKind.RATE_LIMIT, str(e)) from e
        except anthropic.APITimeoutError as e:
            raise BackendError(self.name, BackendErrorKind.TIMEOUT, str(e)) from e
        except anthropic.APIError as e:
            raise BackendError(self.name, BackendErrorKind.UNAVAILABLE, str(e)) from e

        text = "".join(block.text for block in response.content if block.type == "text")

        usage = {}
        if getattr(response, "usage", None) is not None:
            usage = {
                "prompt_tokens": response.usage.input_tokens,
                "completion_tokens": response.usage.output_tokens,
            }

        return Completion(text=text, usage=usage, finish_reason=response.stop_reason)
