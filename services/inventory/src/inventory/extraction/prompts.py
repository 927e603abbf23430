"""Prompt templates for transcript and frame extraction."""

from __future__ import annotations

import json
from typing import Any, Dict, List, Optional, Sequence

INVENTORY_SYSTEM_PROMPT = (
    "You extract home inventory records from narrated walkthrough videos. "
    "Respond with a single JSON object and nothing else."
)

INVENTORY_PROMPT = """Analyze the following transcript of a home inventory walkthrough.

Transcript:
\"\"\"
{transcript}
\"\"\"
{word_timings}
User's available tags:
[{tags}]

For every distinct physical belonging mentioned, extract:
- name (required): a specific name of two or three words or more, e.g. "Sony OLED Television", "Antique Rocking Chair"
- timestamp (required): seconds from the start where the item is first mentioned, with one decimal place
- description: any additional details
- estimated_value: a number, only if a value or price is mentioned or clearly inferable
- inferred_room_name: the room the item is in based on the narration, or null
- tags: only tags from the list above; [] if none fit. Do not invent tags.
- brand, model, condition, serial_number, purchase_date (YYYY-MM-DD) when stated

Return exactly this structure:
{{"items": [{{"name": "...", "timestamp": 12.5, "description": "...", "estimated_value": 150,
"inferred_room_name": "Living Room", "tags": [], "brand": null, "model": null,
"condition": null, "serial_number": null, "purchase_date": null}}]}}
"""

FRAME_PROMPT = """List the distinct physical belongings clearly visible in this video frame
from a home inventory walkthrough. Ignore walls, floors, windows and people.

Return exactly this structure:
{"items": [{"name": "Black Leather Armchair", "description": "...", "estimated_value": 300}]}
Use a specific name of at least two words. Give estimated_value as a number in US dollars.
Return {"items": []} if nothing is identifiable.
"""


def _format_word_timings(words: Optional[Sequence[Dict[str, Any]]], limit: int = 2000) -> str:
    if not words:
        return ""
    compact: List[List[Any]] = [[w["word"], round(float(w["start"]), 1)] for w in words[:limit]]
    return "\nWord timings as [word, start_seconds]:\n" + json.dumps(compact, separators=(",", ":")) + "\n"


def build_inventory_prompt(
    transcript: str,
    tags: Sequence[str],
    words: Optional[Sequence[Dict[str, Any]]] = None,
) -> str:
    return INVENTORY_PROMPT.format(
        transcript=transcript.strip(),
        word_timings=_format_word_timings(words),
        tags=", ".join(json.dumps(tag) for tag in tags),
    )


__all__ = ["FRAME_PROMPT", "INVENTORY_SYSTEM_PROMPT", "build_inventory_prompt"]
