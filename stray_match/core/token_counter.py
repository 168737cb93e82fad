"""
Token usage reported by the vision model.
"""

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class TokenUsage:
    """Token usage data for cost calculation."""
    prompt_tokens: int
    completion_tokens: int

    @property
    def total_tokens(self) -> int:
        """Total tokens used (prompt + completion)."""
        return self.prompt_tokens + self.completion_tokens

    @classmethod
    def from_response(cls, usage: Any) -> "TokenUsage":
        """Build from an OpenAI ``usage`` object; missing counts read as 0."""
        return cls(
            prompt_tokens=int(getattr(usage, "prompt_tokens", 0) or 0),
            completion_tokens=int(getattr(usage, "completion_tokens", 0) or 0),
        )


NO_USAGE = TokenUsage(prompt_tokens=0, completion_tokens=0)
