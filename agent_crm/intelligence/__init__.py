"""Intelligence module - Prompts and the Signal Extractor."""

from agent_crm.intelligence.signals import (
    SignalExtractor,
    decode_json_object,
    decode_number,
    decode_signal,
    fallback_signal,
    signal_extractor,
)

__all__ = [
    "SignalExtractor",
    "decode_json_object",
    "decode_number",
    "decode_signal",
    "fallback_signal",
    "signal_extractor",
]
