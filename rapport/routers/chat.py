import logging

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from rapport.services.llm import LLMProviderError, NoProviderAvailableError


class ChatRequest(BaseModel):
    message: str = Field(..., min_length=1)
    context: str = ""


def create_chat_router(orchestrator) -> APIRouter:
    router = APIRouter()
    logger = logging.getLogger("rapport.api.chat")

    @router.post("/api/chat")
    async def chat(payload: ChatRequest) -> dict:
        try:
            reply = await orchestrator.chat(payload.message, payload.context)
        except NoProviderAvailableError as exc:
            raise HTTPException(status_code=503, detail=str(exc)) from exc
        except LLMProviderError as exc:
            logger.warning("Chat failed: %s", exc)
            raise HTTPException(status_code=502, detail=str(exc)) from exc
        return {"reply": reply}

    return router
