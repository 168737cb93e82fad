"""
Guarded OpenAI client wrapper.

Records one usage event per attempt, successful or not, so the rate limiter
and cost reports see every call.
"""

from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from openai import OpenAI

from ..core.pricing import calculate_cost
from ..core.token_counter import NO_USAGE, TokenUsage
from ..storage.models import UsageEvent

UsageSink = Callable[[UsageEvent], None]


class GuardedVisionClient:
    """OpenAI client wrapper that records usage events.

    Wraps chat completions (text plus image inputs). The usage sink decides
    whether recording is synchronous or handed to a background executor.
    """

    def __init__(
        self,
        model: str,
        feature: str,
        usage_sink: UsageSink,
        client: Optional[Any] = None,
        clock: Callable[[], datetime] = datetime.now
    ):
        """Initialize guarded client.

        Args:
            model: OpenAI model name (required)
            feature: Feature identifier for tracking (required)
            usage_sink: Receives one UsageEvent per attempt
            client: Preconfigured OpenAI client (defaults to ``OpenAI()``)
            clock: Timestamp source for events

        Raises:
            ValueError: If model or feature is missing/empty
        """
        if not model or not model.strip():
            raise ValueError("model is required and cannot be empty")
        if not feature or not feature.strip():
            raise ValueError("feature is required and cannot be empty")

        self.model = model
        self.feature = feature
        self.usage_sink = usage_sink
        self.client = client if client is not None else OpenAI()
        self._clock = clock

    def chat(
        self,
        messages: List[Dict[str, Any]],
        user_id: str,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        timeout: Optional[float] = None,
        **kwargs: Any
    ) -> Any:
        """Create chat completion with usage recording.

        Args:
            messages: List of message dictionaries (required)
            user_id: User the call is billed to
            temperature: Sampling temperature (optional)
            max_tokens: Maximum tokens to generate (optional)
            timeout: Request timeout in seconds (optional)
            **kwargs: Additional OpenAI parameters

        Returns:
            OpenAI chat completion response

        Raises:
            ValueError: If messages is empty or the response has no usage
            OpenAI API errors: Propagated after a failed event is recorded
        """
        if not messages:
            raise ValueError("messages is required and cannot be empty")

        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=messages,
                temperature=temperature,
                max_tokens=max_tokens,
                timeout=timeout,
                **kwargs
            )
        except Exception:
            self._record(user_id, NO_USAGE, success=False)
            raise

        usage = response.usage
        if not usage:
            self._record(user_id, NO_USAGE, success=False, request_id=response.id)
            raise ValueError("OpenAI response missing usage information")

        self._record(user_id, TokenUsage.from_response(usage), success=True, request_id=response.id)

        # Return original OpenAI response unchanged
        return response

    def _record(self, user_id: str, usage: TokenUsage, success: bool, request_id: Optional[str] = None) -> None:
        self.usage_sink(UsageEvent(
            timestamp=self._clock(),
            user_id=user_id,
            feature=self.feature,
            model=self.model,
            prompt_tokens=usage.prompt_tokens,
            completion_tokens=usage.completion_tokens,
            total_tokens=usage.total_tokens,
            cost=calculate_cost(self.model, usage),
            success=success,
            request_id=request_id
        ))


def message_text(response: Any) -> str:
    """Text of the first choice, or an empty string."""
    choices = getattr(response, "choices", None) or []
    if not choices:
        return ""
    return choices[0].message.content or ""
