import logging
from dataclasses import asdict
from typing import Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel

from rapport.config import Config, normalize_fallback, normalize_primary, save_config
from rapport.context import AppContext

_logger = logging.getLogger("rapport.settings")


class AISettingsRequest(BaseModel):
    primary: Optional[str] = None
    fallback: Optional[str] = None
    custom_summary_prompt: Optional[str] = None
    custom_brief_prompt: Optional[str] = None


def _ai_settings(config: Config) -> dict:
    data = asdict(config.ai)
    data["primary"] = config.ai.primary.value
    data["fallback"] = config.ai.fallback.value
    data["cloud_api_key_present"] = bool(config.ai.cloud_api_key)
    return data


def create_settings_router(ctx: AppContext, config: Config, orchestrator) -> APIRouter:
    router = APIRouter()

    @router.get("/api/settings/ai")
    def get_ai_settings() -> dict:
        return {"settings": _ai_settings(config), "status": orchestrator.status()}

    @router.put("/api/settings/ai")
    def update_ai_settings(payload: AISettingsRequest) -> dict:
        updates = payload.model_dump(exclude_unset=True)
        if "primary" in updates:
            config.ai.primary = normalize_primary(updates.pop("primary"))
        if "fallback" in updates:
            config.ai.fallback = normalize_fallback(updates.pop("fallback"))
        for key, value in updates.items():
            if key.startswith("custom_") and value is not None and not value.strip():
                value = None
            setattr(config.ai, key, value)

        try:
            save_config(ctx.config_path, config)
        except OSError as exc:
            _logger.error("Failed to save config: %s", exc)
            raise HTTPException(status_code=500, detail="Failed to save settings") from exc
        _logger.info(
            "AI settings updated: primary=%s fallback=%s",
            config.ai.primary.value,
            config.ai.fallback.value,
        )
        selection = orchestrator.update_config(config.ai)
        return {"settings": _ai_settings(config), "selection": selection.to_dict()}

    return router
