"""Clients for the video host, speech-to-text and language model services."""

from .llm import LLMClient
from .mux import MuxClient
from .transcription import TranscriptionClient, extract_paragraph_text, extract_plain_text, extract_words
from .vision import VisionAdapter, parse_detections

__all__ = [
    "LLMClient",
    "MuxClient",
    "TranscriptionClient",
    "VisionAdapter",
    "extract_paragraph_text",
    "extract_plain_text",
    "extract_words",
    "parse_detections",
]
