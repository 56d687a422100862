"""Base backend interface."""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from ..logging import UsageEvent, get_logger
from ..response.assembler import clean_response

logger = logging.getLogger(__name__)


class BackendErrorKind(Enum):
    """Why a backend call failed."""

    TIMEOUT = "timeout"
    RATE_LIMIT = "rate_limit"
    INVALID_RESPONSE = "invalid_response"
    UNAVAILABLE = "unavailable"


class BackendError(Exception):
    """Raised by Backend.invoke when no usable text was produced."""

    def __init__(self, backend: str, kind: BackendErrorKind, message: str = "") -> None:
        self.backend = backend
        self.kind = kind
        self.message = message
        super().__init__(f"{backend}: {kind.value}" + (f" ({message})" if message else ""))


@dataclass
class Completion:
    """Raw output of one provider call."""

    text: str
    usage: dict[str, Any] = field(default_factory=dict)
    finish_reason: str | None = None


class Backend(ABC):
    """A text-generation service the dispatcher can call.

    Subclasses implement ``_complete`` against their SDK and translate SDK
    errors into BackendError. ``invoke`` adds the timeout, the empty-output
    check and usage logging shared by every backend.
    """

    provider: str = "unknown"
    endpoint: str = "completions"

    def __init__(self, model: str, label: str) -> None:
        """Initialize the backend.

        Args:
            model: Provider model identifier.
            label: Heading used when this backend's answer is shown alongside another.
        """
        self.model = model
        self.label = label

    @property
    def name(self) -> str:
        """Identity used in logs and dispatch results."""
        return f"{self.provider}:{self.model}"

    @abstractmethod
    async def _complete(
        self,
        prompt: str,
        max_tokens: int,
        temperature: float,
        system: str | None,
    ) -> Completion:
        """Call the provider once."""
        ...

    async def invoke(
        self,
        prompt: str,
        max_tokens: int,
        temperature: float,
        timeout_s: float,
        system: str | None = None,
    ) -> str:
        """Generate text for a prompt.

        Args:
            prompt: The user-facing prompt.
            max_tokens: Output token limit.
            temperature: Sampling temperature.
            timeout_s: Seconds before the call is cancelled.
            system: Optional system prompt.

        Returns:
            Non-empty generated text, with content left after artifact cleanup.

        Raises:
            BackendError: On timeout, rate limit, provider failure or empty output.
        """
        start_time = time.monotonic()
        completion: Completion | None = None
        error: BackendError | None = None

        try:
            completion = await asyncio.wait_for(
                self._complete(prompt, max_tokens, temperature, system),
                timeout=timeout_s,
            )
            if not completion.text.strip():
                raise BackendError(self.name, BackendErrorKind.INVALID_RESPONSE, "empty output")
            if not clean_response(completion.text):
                raise BackendError(
                    self.name, BackendErrorKind.INVALID_RESPONSE, "only reasoning artifacts"
                )
            return completion.text
        except asyncio.TimeoutError as e:
            error = BackendError(self.name, BackendErrorKind.TIMEOUT, f"after {timeout_s}s")
            raise error from e
        except BackendError as e:
            error = e
            raise
        except (AttributeError, IndexError, KeyError, TypeError) as e:
            error = BackendError(self.name, BackendErrorKind.INVALID_RESPONSE, str(e))
            raise error from e
        finally:
            duration_ms = (time.monotonic() - start_time) * 1000
            metrics: dict[str, Any] = {
                "model": self.model,
                "latency_ms": round(duration_ms, 1),
                "success": error is None and completion is not None,
                "max_tokens": max_tokens,
            }
            if completion is not None:
                metrics.update(completion.usage)
                if completion.finish_reason:
                    metrics["finish_reason"] = completion.finish_reason
            if error is not None:
                metrics["error_kind"] = error.kind.value
                logger.warning(f"Backend call failed: {error}")
            get_logger().log_usage(UsageEvent(self.provider, self.endpoint, metrics))
