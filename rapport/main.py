import logging
import os
from typing import Optional

from fastapi import FastAPI

from rapport.config import Config, load_config
from rapport.context import AppContext
from rapport.routers.people import create_people_router
from rapport.routers.chat import create_chat_router
from rapport.routers.settings import create_settings_router
from rapport.routers.transcripts import create_transcripts_router
from rapport.services.ai_orchestrator import (
    AIOrchestrator,
    FallbackNotifier,
    PromptLibrary,
    ProviderFactory,
    build_providers,
)
from rapport.services.brief_cache import BriefCache
from rapport.services.briefs import BriefService
from rapport.services.chunking import ChunkedSummarizer
from rapport.services.llm import LLMProvider
from rapport.services.logging_setup import configure_logging
from rapport.services.people_store import PeopleStore

VERSION = "0.1.0"


def create_app(
    data_dir: Optional[str] = None,
    config: Optional[Config] = None,
    providers: Optional[tuple[LLMProvider, LLMProvider]] = None,
    configure_logs: bool = True,
) -> FastAPI:
    cwd = os.getcwd()
    data_dir = data_dir or os.path.join(cwd, "data")
    ctx = AppContext(
        cwd=cwd,
        data_dir=data_dir,
        config_path=os.path.join(data_dir, "config.json"),
    )
    ctx.ensure_dirs()

    if config is None:
        config = load_config(ctx.config_path)
    if configure_logs:
        configure_logging(ctx.logs_dir, config.logging)
    logger = logging.getLogger("rapport.boot")
    logger.info("Boot: AppContext ready data_dir=%s", ctx.data_dir)

    if providers is None:
        providers = build_providers(config.ai)
    on_device, cloud = providers
    factory = ProviderFactory(config.ai, on_device=on_device, cloud=cloud)
    notifier = FallbackNotifier()
    chunker = ChunkedSummarizer(
        max_chars=config.pipeline.chunk_threshold,
        overlap=config.pipeline.chunk_overlap,
        delay_seconds=config.pipeline.chunk_delay_seconds,
    )
    orchestrator = AIOrchestrator(
        config.ai,
        factory,
        notifier=notifier,
        prompts=PromptLibrary(ctx.prompts_dir),
        chunker=chunker,
    )
    logger.info("Boot: orchestrator ready")

    store = PeopleStore(ctx.data_dir, user=config.user)
    cache = BriefCache(ttl_seconds=config.cache.brief_ttl_seconds)
    brief_service = BriefService(orchestrator, cache)
    logger.info("Boot: people store and brief cache ready")

    app = FastAPI(title="Rapport", version=VERSION)
    app.state.version = VERSION
    app.state.ctx = ctx
    app.state.config = config
    app.state.orchestrator = orchestrator
    app.state.store = store

    app.include_router(create_transcripts_router(config, orchestrator, store))
    logger.info("Boot: transcripts router mounted")
    app.include_router(create_people_router(store, brief_service))
    logger.info("Boot: people router mounted")
    app.include_router(create_chat_router(orchestrator))
    logger.info("Boot: chat router mounted")
    app.include_router(create_settings_router(ctx, config, orchestrator))
    logger.info("Boot: settings router mounted")

    @app.get("/api/health")
    def health() -> dict:
        return {"status": "ok", "version": app.state.version}

    logger.info("Boot: create_app complete")
    return app
