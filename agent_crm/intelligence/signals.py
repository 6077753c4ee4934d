"""
Signal Extractor.

Turns untrusted model output into a bounded Signal. Decoding is a separate
step that raises SignalDecodeError; extract() is the only place that error
(and InferenceError) is recovered, by returning the degraded fallback Signal.
"""

import json
import logging
import math
import re
from typing import Any, Dict, List, Optional, Tuple

from pydantic import ValidationError

from agent_crm.core.exceptions import InferenceError, SignalDecodeError
from agent_crm.integrations.inference import InferenceService, inference_service
from agent_crm.intelligence import prompts
from agent_crm.models import AlertRequest, Sentiment, Signal, SignalKind

logger = logging.getLogger(__name__)


FENCE_PATTERN = re.compile(r"```[a-zA-Z]*")
NUMBER_PATTERN = re.compile(r"-?\d+(?:\.\d+)?")

SENTIMENT_SCORES = {
    Sentiment.POSITIVE: 0.8,
    Sentiment.NEUTRAL: 0.5,
    Sentiment.NEGATIVE: 0.2,
}

BRACKET_PAIRS = {"{": "}", "[": "]"}


# ===========================================
# Decode step
# ===========================================

def strip_wrapping(text: str) -> str:
    """Remove markdown code fences and surrounding whitespace."""
    return FENCE_PATTERN.sub("", text or "").strip()


def _balanced_end(text: str, start: int) -> Optional[int]:
    """Index just past the structure opening at start, or None if it never closes."""
    stack: List[str] = []
    in_string = False
    escaped = False
    for index in range(start, len(text)):
        char = text[index]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue

        if char == '"':
            in_string = True
        elif char in BRACKET_PAIRS:
            stack.append(BRACKET_PAIRS[char])
        elif char in ("}", "]"):
            if not stack or stack.pop() != char:
                return None
            if not stack:
                return index + 1
    return None


def find_balanced(text: str) -> Optional[str]:
    """
    First balanced {...} or [...] structure in text.

    Brackets inside JSON string literals are ignored. Returns None when
    there is no opener or the structure never closes.
    """
    for index, char in enumerate(text):
        if char in BRACKET_PAIRS:
            end = _balanced_end(text, index)
            return text[index:end] if end is not None else None
    return None


def decode_json_object(raw: str) -> Dict[str, Any]:
    """
    Decode the first JSON object in raw model output.

    Each balanced {...} candidate is tried in order, so bracketed
    preambles such as "[Analysis]" or a stray invalid block are skipped.

    Raises:
        SignalDecodeError: no structure found, invalid JSON, or not an object
    """
    text = strip_wrapping(raw)
    cause = None
    position = text.find("{")
    while position != -1:
        end = _balanced_end(text, position)
        if end is None:
            position = text.find("{", position + 1)
            continue
        try:
            payload = json.loads(text[position:end])
        except json.JSONDecodeError as e:
            cause = str(e)
        else:
            if isinstance(payload, dict):
                return payload
        position = text.find("{", end)

    if cause is not None:
        raise SignalDecodeError("Invalid JSON in model output", details={"cause": cause})
    raise SignalDecodeError("No JSON object in model output", details={"raw": raw[:200]})


def decode_number(raw: str) -> float:
    """First finite number in raw model output."""
    match = NUMBER_PATTERN.search(strip_wrapping(raw))
    if match is None:
        raise SignalDecodeError("No number in model output", details={"raw": raw[:200]})
    value = float(match.group())
    if not math.isfinite(value):
        raise SignalDecodeError("Number in model output is not finite", details={"raw": raw[:200]})
    return value


def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


def sentiment_label(score: float) -> Sentiment:
    if score >= 0.6:
        return Sentiment.POSITIVE
    if score <= 0.4:
        return Sentiment.NEGATIVE
    return Sentiment.NEUTRAL


def _unit_float(value: Any, default: float) -> float:
    if isinstance(value, bool):
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if not math.isfinite(number):
        return default
    return clamp(number)


def _sentiment(value: Any) -> Tuple[Sentiment, float]:
    """(label, score) from either a label or a numeric model value."""
    if isinstance(value, str):
        try:
            label = Sentiment(value.strip().lower())
            return label, SENTIMENT_SCORES[label]
        except ValueError:
            pass
    score = _unit_float(value, 0.5)
    return sentiment_label(score), score


def _str_list(value: Any) -> List[str]:
    if isinstance(value, str):
        return [value] if value.strip() else []
    if not isinstance(value, list):
        return []
    return [str(item) for item in value if item is not None and str(item).strip()]


def _optional_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _amount(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        match = NUMBER_PATTERN.search(value.replace(",", ""))
        if match is None:
            return None
        value = match.group()
    try:
        amount = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(amount):
        return None
    return max(0.0, amount)


def decode_signal(kind: SignalKind, raw: str) -> Signal:
    """
    Decode raw model output into a Signal of the given kind.

    Missing or malformed fields fall back to the Signal's neutral defaults;
    only a missing/undecodable structure is an error.

    Raises:
        SignalDecodeError: output could not be decoded
    """
    try:
        if kind == SignalKind.REPLY_SENTIMENT:
            score = clamp(decode_number(raw))
            return Signal(kind=kind, sentiment=sentiment_label(score), sentiment_score=score)

        payload = decode_json_object(raw)
        label, score = _sentiment(payload.get("sentiment"))

        if kind == SignalKind.MEETING_TRANSCRIPT:
            alert = payload.get("alertManager") or payload.get("alert_manager") or {}
            if not isinstance(alert, dict):
                alert = {}
            return Signal(
                kind=kind,
                confidence=_unit_float(payload.get("confidence"), 0.5),
                sentiment=label,
                sentiment_score=score,
                concerns=_str_list(payload.get("concerns")),
                next_actions=_str_list(payload.get("nextActions", payload.get("next_actions"))),
                alert_manager=AlertRequest(
                    needed=alert.get("needed") is True,
                    reason=str(alert.get("reason") or "")
                ),
            )

        return Signal(
            kind=kind,
            sentiment=label,
            sentiment_score=score,
            stage_signal=_optional_str(payload.get("stage_signal")),
            budget_amount=_amount(payload.get("budget_amount")),
            close_date=_optional_str(payload.get("close_date")),
            next_action=_optional_str(payload.get("next_action")),
        )
    except ValidationError as e:
        raise SignalDecodeError("Decoded values out of bounds", details={"cause": str(e)}) from e


def fallback_signal(kind: SignalKind, reason: str) -> Signal:
    """Neutral, degraded Signal used whenever extraction cannot succeed."""
    return Signal(
        kind=kind,
        confidence=0.5,
        sentiment=Sentiment.NEUTRAL,
        sentiment_score=0.5,
        concerns=[],
        alert_manager=AlertRequest(needed=False, reason=reason),
        degraded=True,
    )


# ===========================================
# Extractor
# ===========================================

class SignalExtractor:
    """
    extract(kind, text, context) -> Signal.

    Never raises for bad model output or a failed inference call; both
    yield fallback_signal() with degraded=True.
    """

    TEMPERATURES = {
        SignalKind.MEETING_TRANSCRIPT: 0.3,
        SignalKind.EMAIL_REPLY: 0.3,
        SignalKind.REPLY_SENTIMENT: 0.1,
    }

    def __init__(self, inference: Optional[InferenceService] = None):
        self.inference = inference or inference_service

    async def extract(
        self,
        kind: SignalKind,
        text: str,
        context: Optional[Dict[str, Any]] = None
    ) -> Signal:
        """
        Interpret free text as a Signal.

        Args:
            kind: What the text is (transcript, email reply, reply sentiment)
            text: Untrusted free text
            context: Optional extra facts prepended to the prompt

        Returns:
            Decoded Signal, or the degraded fallback
        """
        user_prompt = prompts.context_block(context or {}) + prompts.signal_prompt(kind, text)

        try:
            raw = await self.inference.generate(
                prompts.SALES_ANALYST_SYSTEM,
                user_prompt,
                temperature=self.TEMPERATURES.get(kind, 0.3),
                max_tokens=512
            )
        except InferenceError as e:
            logger.warning(f"Inference failed for {kind.value} signal, using fallback: {e.message}")
            return fallback_signal(kind, "Inference unavailable")

        try:
            signal = decode_signal(kind, raw)
        except SignalDecodeError as e:
            logger.warning(f"Could not decode {kind.value} signal, using fallback: {e.message}")
            return fallback_signal(kind, "Unable to parse analysis")

        logger.info(
            f"Extracted {kind.value} signal: confidence={signal.confidence:.2f}, "
            f"sentiment={signal.sentiment.value}"
        )
        return signal

    async def draft_object(
        self,
        user_prompt: str,
        system_prompt: Optional[str] = prompts.SALES_ASSISTANT_SYSTEM,
        temperature: float = 0.7,
        max_tokens: int = 1024
    ) -> Dict[str, Any]:
        """
        Generate and decode a JSON object (e.g. an email draft).

        Unlike extract(), there is no neutral value to fall back on, so
        both failure modes are surfaced to the caller.

        Raises:
            InferenceError: the generative call failed
            SignalDecodeError: the output held no JSON object
        """
        raw = await self.inference.generate(system_prompt, user_prompt, temperature, max_tokens)
        return decode_json_object(raw)

    async def estimate_number(
        self,
        user_prompt: str,
        default: float,
        system_prompt: Optional[str] = prompts.SALES_ANALYST_SYSTEM
    ) -> float:
        """First number in the model's answer, or default when there is none."""
        try:
            raw = await self.inference.generate(system_prompt, user_prompt, 0.2, 64)
            return decode_number(raw)
        except (InferenceError, SignalDecodeError) as e:
            logger.warning(f"Numeric estimate unavailable, using default {default}: {e.message}")
            return default


# Singleton instance
signal_extractor = SignalExtractor()
