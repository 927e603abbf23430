"""Transcript to candidate items."""

from __future__ import annotations

from typing import Any, Dict, Optional, Sequence

from common.logging import get_logger

from ..adapters.llm import LLMClient
from ..categories.heuristics import HeuristicTables, load_heuristics
from ..errors import ModelCallFailed
from ..parsing.recovery import ParseContext, ParseOutcome, RecoveryParser
from .prompts import INVENTORY_SYSTEM_PROMPT, build_inventory_prompt

LOGGER = get_logger(__name__)


class CandidateExtractor:
    """Ask the model for items in a transcript and recover whatever it returns.

    A failed model call is not raised: the outcome comes back degraded with no
    items, and the caller falls back to the vision-derived list.
    """

    def __init__(self, llm: LLMClient, heuristics: Optional[HeuristicTables] = None) -> None:
        self.llm = llm
        self.heuristics = heuristics or load_heuristics()

    async def extract(
        self,
        transcript: str,
        tag_vocabulary: Sequence[str] = (),
        room_vocabulary: Sequence[str] = (),
        words: Optional[Sequence[Dict[str, Any]]] = None,
    ) -> ParseOutcome:
        prompt = build_inventory_prompt(transcript, tag_vocabulary, words)
        raw: Optional[str]
        try:
            raw = await self.llm.complete(prompt, system_prompt=INVENTORY_SYSTEM_PROMPT)
        except ModelCallFailed as exc:
            LOGGER.warning("candidate extraction model call failed", attempts=exc.attempts, error=str(exc))
            raw = None

        parser = RecoveryParser(
            ParseContext(
                tag_vocabulary=tuple(tag_vocabulary),
                room_vocabulary=tuple(room_vocabulary),
                heuristics=self.heuristics,
            )
        )
        return parser.parse(raw)


__all__ = ["CandidateExtractor"]
