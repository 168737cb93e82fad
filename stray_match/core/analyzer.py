"""
Vision comparison of a lost report against a sighting.

The model is asked whether two photos show the same individual animal and
answers with a JSON object. Anything that goes wrong (transport errors,
timeouts, unparsable replies) yields ``None``: no match, never an exception.
"""

import math
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from stray_match.config.loader import AnalyzerConfig
from stray_match.logging_config import get_logger
from stray_match.sdk.openai_client import GuardedVisionClient, message_text
from stray_match.storage.models import AnimalRecord, LostAnimalRecord

from .deadline import Deadline
from .errors import AnalyzerUnavailable
from .json_utils import extract_json_object

logger = get_logger(__name__)

SYSTEM_PROMPT = (
    "You are an expert at identifying and matching animals. Compare the lost "
    "animal with the sighting and decide whether they are the same individual. "
    "Return ONLY valid JSON."
)

MATCHING_RULES = """Rules, in order of priority:
1. Species must match. A dog and a cat are never the same animal: if the types differ, confidence is 0.
2. Primary coat colour must match. White against orange, brown or tabby means confidence 0.
3. Pattern must match. Solid against striped/tabby is not a match.
4. Size and age must be compatible. A kitten cannot match an adult cat.
5. Distinctive markings (spots, patches, scars) must appear in both.
6. Be strict. Use 80 or above only when you are certain it is the same individual.

Look closely at coat colour, pattern, face markings, eye colour, body size and build, and any unique marks."""

RESPONSE_FORMAT = """Return ONLY a JSON object, no markdown:
{
  "isMatch": true or false,
  "confidence": number from 0 to 100,
  "reason": "explanation comparing specific visual features, especially colour"
}"""


@dataclass(frozen=True)
class MatchAnalysis:
    """Normalized model verdict."""
    confidence: float
    reason: str
    is_match: Optional[bool] = None


def _or_unknown(value: Optional[str], fallback: str = "Unknown") -> str:
    return value if value else fallback


def build_comparison_prompt(lost: LostAnimalRecord, sighting: AnimalRecord) -> str:
    """Text part of the comparison request (photo 1 = lost, photo 2 = sighting)."""
    features = ", ".join(lost.distinctive_features) if lost.distinctive_features else "None listed"
    return "\n".join([
        "You are comparing two animal photos to determine if they show the EXACT SAME individual animal.",
        "",
        "LOST ANIMAL (Photo 1):",
        f"- Name: {lost.name}",
        f"- Type: {lost.animal_type.value}",
        f"- Breed: {_or_unknown(lost.breed)}",
        f"- Color: {_or_unknown(lost.color)}",
        f"- Description: {_or_unknown(lost.description, 'No description')}",
        f"- Distinctive features: {features}",
        "",
        "SIGHTING (Photo 2):",
        f"- Type: {sighting.animal_type.value}",
        f"- Breed: {_or_unknown(sighting.breed)}",
        f"- Color: {_or_unknown(sighting.color)}",
        f"- Description: {_or_unknown(sighting.description, 'No description')}",
        "",
        MATCHING_RULES,
        "",
        RESPONSE_FORMAT,
    ])


def parse_match_response(content: str) -> MatchAnalysis:
    """Normalize the model's reply.

    Raises:
        ValueError: If no JSON object is present or confidence is not a finite number
    """
    payload = extract_json_object(content)
    raw_confidence = payload.get("confidence") or 0
    try:
        confidence = float(raw_confidence)
    except (TypeError, ValueError) as e:
        raise ValueError(f"confidence is not a number: {raw_confidence!r}") from e
    if not math.isfinite(confidence):
        raise ValueError(f"confidence is not a finite number: {raw_confidence!r}")
    confidence = max(0.0, min(100.0, confidence))

    is_match = payload.get("isMatch")
    return MatchAnalysis(
        confidence=confidence,
        reason=str(payload.get("reason") or "No reason provided"),
        is_match=is_match if isinstance(is_match, bool) else None,
    )


class MatchAnalyzer:
    """Scores (lost, sighting) pairs with the vision model."""

    def __init__(self, client: GuardedVisionClient, config: AnalyzerConfig):
        self.client = client
        self.config = config

    def build_messages(self, lost: LostAnimalRecord, sighting: AnimalRecord) -> List[Dict[str, Any]]:
        return [
            {"role": "system", "content": SYSTEM_PROMPT},
            {
                "role": "user",
                "content": [
                    {"type": "text", "text": build_comparison_prompt(lost, sighting)},
                    {"type": "image_url", "image_url": {"url": lost.photo_ref, "detail": self.config.image_detail}},
                    {"type": "image_url", "image_url": {"url": sighting.photo_ref, "detail": self.config.image_detail}},
                ],
            },
        ]

    def analyze(
        self,
        lost: LostAnimalRecord,
        sighting: AnimalRecord,
        user_id: str,
        deadline: Optional[Deadline] = None
    ) -> Optional[MatchAnalysis]:
        """Compare one pair.

        Args:
            lost: Lost report (photo 1)
            sighting: Sighting (photo 2)
            user_id: User the model call is billed to
            deadline: Bounds the request timeout

        Returns:
            MatchAnalysis, or None when the model is unavailable or its
            answer cannot be parsed
        """
        try:
            timeout = (deadline or Deadline.unbounded()).timeout(self.config.timeout_seconds)
            response = self.client.chat(
                messages=self.build_messages(lost, sighting),
                user_id=user_id,
                temperature=self.config.temperature,
                max_tokens=self.config.max_tokens,
                timeout=timeout,
            )
        except Exception as e:
            error = AnalyzerUnavailable(f"comparison {lost.id}/{sighting.id} failed: {e}")
            logger.warning(str(error))
            return None

        content = message_text(response)
        try:
            analysis = parse_match_response(content)
        except ValueError as e:
            error = AnalyzerUnavailable(f"unparsable answer for {lost.id}/{sighting.id}: {e}")
            logger.warning(f"{error}; content was: {content!r}")
            return None

        logger.debug(f"Analysis {lost.id}/{sighting.id}: {analysis.confidence:.0f} ({analysis.reason})")
        return analysis
