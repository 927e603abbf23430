"""Frame analysis through a vision-capable language model."""

from __future__ import annotations

import json
from typing import List, Optional

from pydantic import ValidationError

from common.config import settings
from common.logging import get_logger

from ..extraction.prompts import FRAME_PROMPT
from ..parsing.recovery import coerce_positive_value, extract_json_text, repair_structure
from ..schemas import VisionDetection, VisionResponse
from .llm import LLMClient

LOGGER = get_logger(__name__)


def parse_detections(raw: str) -> List[VisionDetection]:
    """Detections from a model response; entries without a name are dropped."""

    text = repair_structure(extract_json_text(raw))
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        LOGGER.warning("frame analysis returned no JSON", preview=raw[:200])
        return []

    if isinstance(data, list):
        data = {"items": data}
    try:
        return VisionResponse.model_validate(data).items
    except ValidationError as exc:
        LOGGER.info("frame response failed validation, keeping named entries", errors=exc.error_count())

    entries = (data.get("items") or []) if isinstance(data, dict) else []
    detections: List[VisionDetection] = []
    for entry in entries:
        if not isinstance(entry, dict) or not str(entry.get("name") or "").strip():
            continue
        detections.append(
            VisionDetection(
                name=str(entry["name"]).strip(),
                description=str(entry["description"]) if entry.get("description") else None,
                estimated_value=coerce_positive_value(entry.get("estimated_value")),
            )
        )
    return detections


class VisionAdapter:
    def __init__(self, llm: LLMClient, model: Optional[str] = None) -> None:
        self.llm = llm
        self.model = model or settings.vision_model

    async def analyze_frame(self, image_url: str) -> List[VisionDetection]:
        """Objects visible at ``image_url``. Model failures propagate as ``ModelCallFailed``."""

        raw = await self.llm.complete(FRAME_PROMPT, images=[image_url], model=self.model)
        detections = parse_detections(raw)
        LOGGER.info("frame analyzed", detections=len(detections))
        return detections


__all__ = ["VisionAdapter", "parse_detections"]
