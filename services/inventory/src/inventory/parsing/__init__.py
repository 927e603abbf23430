"""Recovery of structured items from language model output."""

from .recovery import (
    SCRATCH_FALLBACK,
    ParseContext,
    ParseOutcome,
    RecoveryParser,
    extract_json_text,
    numeric_repair,
    partial_extraction,
    pattern_extraction,
    repair_structure,
    strict_parse,
    structural_repair,
)

__all__ = [
    "SCRATCH_FALLBACK",
    "ParseContext",
    "ParseOutcome",
    "RecoveryParser",
    "extract_json_text",
    "numeric_repair",
    "partial_extraction",
    "pattern_extraction",
    "repair_structure",
    "strict_parse",
    "structural_repair",
]
