"""
Single-image animal analysis behind ``POST /analyze``.
"""

from typing import Any, Dict, Optional, Tuple

from stray_match.config.loader import AnalyzerConfig
from stray_match.sdk.openai_client import GuardedVisionClient, message_text

from .json_utils import extract_json_object
from .pricing import calculate_cost
from .token_counter import TokenUsage

SYSTEM_PROMPT = (
    "You are an expert veterinarian and animal breed specialist. Analyze "
    "images accurately and provide helpful, structured information."
)

DEFAULT_PROMPT = """Analyze this cat or dog image. Provide a JSON response with:
{
  "animalType": "cat" or "dog",
  "breed": "specific breed name",
  "confidence": 0.0-1.0,
  "color": "primary color",
  "estimatedAge": "kitten/puppy, young, adult, or senior",
  "healthStatus": "healthy, injured, sick, or unknown",
  "description": "2-3 sentence description",
  "distinctiveFeatures": ["feature1", "feature2"]
}"""


class AnimalDescriber:
    """Describes one photo: species, breed, colour, age, health."""

    def __init__(self, client: GuardedVisionClient, config: AnalyzerConfig, max_tokens: int = 500):
        self.client = client
        self.config = config
        self.max_tokens = max_tokens

    def describe(
        self,
        image: str,
        user_id: str,
        prompt: Optional[str] = None
    ) -> Tuple[Dict[str, Any], TokenUsage, float]:
        """Analyze an image URL or data URI.

        Returns:
            Tuple of (analysis dict, token usage, cost in USD). When the
            reply holds no JSON object the raw text is returned as
            ``{"description": text}``.

        Raises:
            Exception: Model errors propagate; the guarded client has
                already recorded a failed usage event
        """
        response = self.client.chat(
            messages=[
                {"role": "system", "content": SYSTEM_PROMPT},
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": prompt or DEFAULT_PROMPT},
                        # low detail keeps single-image analysis cheap
                        {"type": "image_url", "image_url": {"url": image, "detail": "low"}},
                    ],
                },
            ],
            user_id=user_id,
            temperature=self.config.temperature,
            max_tokens=self.max_tokens,
            timeout=self.config.timeout_seconds,
        )

        content = message_text(response)
        try:
            analysis = extract_json_object(content)
        except ValueError:
            analysis = {"description": content}

        usage = TokenUsage.from_response(response.usage)
        return analysis, usage, calculate_cost(self.client.model, usage)
