import logging
from typing import Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from rapport.config import Config
from rapport.services.identity import IdentityResolver
from rapport.services.llm import NoProviderAvailableError
from rapport.services.models import PreIdentifiedParticipant
from rapport.services.participants import ParticipantExtractor
from rapport.services.people_store import PeopleStore, PersistenceError
from rapport.services.transcript_format import detect_format
from rapport.services.transcript_pipeline import PipelineController


class FormatRequest(BaseModel):
    transcript_text: str


class PreIdentifiedParticipantRequest(BaseModel):
    display_name: str = Field(..., min_length=1)
    total_speaking_time: float = 0.0
    person_id: Optional[str] = None
    confidence: float = 0.0
    speaker_index: Optional[int] = None
    voice_embedding: Optional[list[float]] = None
    is_current_user: bool = False


class AnalyzeRequest(BaseModel):
    transcript_text: str
    user_notes: Optional[str] = None
    participants: Optional[list[PreIdentifiedParticipantRequest]] = None
    save: bool = False


def create_transcripts_router(
    config: Config, orchestrator, store: PeopleStore
) -> APIRouter:
    router = APIRouter()
    logger = logging.getLogger("rapport.api.transcripts")

    @router.post("/api/transcripts/format")
    def transcript_format(payload: FormatRequest) -> dict:
        fmt = detect_format(payload.transcript_text)
        return {"format": fmt.value, "display_name": fmt.display_name}

    @router.post("/api/transcripts/analyze")
    async def analyze_transcript(payload: AnalyzeRequest) -> dict:
        if not payload.transcript_text.strip():
            raise HTTPException(status_code=422, detail="Transcript text is empty")

        resolver = IdentityResolver(store, threshold=config.pipeline.match_threshold)
        extractor = ParticipantExtractor(orchestrator, resolver, config.user)
        controller = PipelineController(orchestrator, extractor)

        pre_identified = None
        if payload.participants:
            pre_identified = [
                PreIdentifiedParticipant(**item.model_dump()) for item in payload.participants
            ]

        logger.info("Analyze: %d chars, notes=%s", len(payload.transcript_text), bool(payload.user_notes))
        result = await controller.run(
            payload.transcript_text, pre_identified=pre_identified, user_notes=payload.user_notes
        )
        if result is None:
            error = controller.last_error
            if isinstance(error, NoProviderAvailableError):
                raise HTTPException(status_code=503, detail=str(error))
            raise HTTPException(status_code=502, detail=f"Analysis failed: {error}")

        if not payload.save:
            return result.to_dict()

        try:
            saved = store.save_analysis(result)
        except PersistenceError as exc:
            logger.error("Saving analysis failed: %s", exc)
            raise HTTPException(status_code=500, detail=str(exc)) from exc
        # participants now carry the person ids they were saved under
        response = result.to_dict()
        response["saved_conversation_ids"] = [c.id for c in saved]
        return response

    return router
