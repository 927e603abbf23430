# noqa: D401
"""Dependency wiring for the inventory service."""

from __future__ import annotations

import logging
from functools import lru_cache

from common.config import settings

from .adapters.llm import LLMClient
from .adapters.mux import MuxClient
from .adapters.transcription import TranscriptionClient
from .adapters.vision import VisionAdapter
from .categories.heuristics import HeuristicTables, load_heuristics
from .categories.resolver import CategoryResolver
from .events.store import EventStore
from .extraction.candidates import CandidateExtractor
from .extraction.frames import FrameSampler
from .jobs import register_handlers
from .merge.engine import MergeEngine
from .pipeline import InventoryPipeline
from .reconciler import AssetReconciler
from .tasks import TaskRunner
from .uploads import UploadService

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def get_heuristics() -> HeuristicTables:
    return load_heuristics(settings.heuristics_path)


@lru_cache(maxsize=1)
def get_event_store() -> EventStore:
    return EventStore()


@lru_cache(maxsize=1)
def get_reconciler() -> AssetReconciler:
    return AssetReconciler(event_store=get_event_store())


@lru_cache(maxsize=1)
def get_category_resolver() -> CategoryResolver:
    return CategoryResolver()


@lru_cache(maxsize=1)
def get_mux_client() -> MuxClient:
    return MuxClient()


@lru_cache(maxsize=1)
def get_upload_service() -> UploadService:
    return UploadService(get_mux_client())


@lru_cache(maxsize=1)
def get_llm_client() -> LLMClient:
    logger.info("LLM provider %s, model %s", settings.llm_provider, settings.llm_model)
    return LLMClient()


@lru_cache(maxsize=1)
def get_transcription_client() -> TranscriptionClient:
    return TranscriptionClient()


@lru_cache(maxsize=1)
def get_merge_engine() -> MergeEngine:
    return MergeEngine(heuristics=get_heuristics())


@lru_cache(maxsize=1)
def get_pipeline() -> InventoryPipeline:
    return InventoryPipeline(
        extractor=CandidateExtractor(get_llm_client(), heuristics=get_heuristics()),
        engine=get_merge_engine(),
        resolver=get_category_resolver(),
        transcriber=get_transcription_client(),
        mux=get_mux_client(),
    )


@lru_cache(maxsize=1)
def get_frame_sampler() -> FrameSampler:
    return FrameSampler(VisionAdapter(get_llm_client()), get_mux_client())


@lru_cache(maxsize=1)
def get_task_runner() -> TaskRunner:
    runner = TaskRunner()
    register_handlers(runner, get_pipeline(), get_frame_sampler())
    return runner


__all__ = [
    "get_category_resolver",
    "get_event_store",
    "get_frame_sampler",
    "get_heuristics",
    "get_llm_client",
    "get_merge_engine",
    "get_mux_client",
    "get_pipeline",
    "get_reconciler",
    "get_task_runner",
    "get_transcription_client",
    "get_upload_service",
]
