import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel, Field

from rapport.services.briefs import BriefService
from rapport.services.llm import LLMProviderError, NoProviderAvailableError
from rapport.services.people_store import PeopleStore, PersistenceError


class CreatePersonRequest(BaseModel):
    name: str = Field(..., min_length=1)
    role: Optional[str] = None
    email: Optional[str] = None


def create_people_router(store: PeopleStore, brief_service: BriefService) -> APIRouter:
    router = APIRouter()
    logger = logging.getLogger("rapport.api.people")

    @router.get("/api/people")
    def list_people() -> dict:
        return {"people": [p.to_dict() for p in store.list_people()]}

    @router.post("/api/people")
    def create_person(payload: CreatePersonRequest) -> dict:
        try:
            person = store.create_person(payload.name, role=payload.role, email=payload.email)
        except PersistenceError as exc:
            raise HTTPException(status_code=500, detail=str(exc)) from exc
        return person.to_dict()

    @router.get("/api/people/{person_id}/conversations")
    def list_conversations(person_id: str) -> dict:
        if store.find_person_by_id(person_id) is None:
            raise HTTPException(status_code=404, detail="Person not found")
        return {
            "conversations": [c.to_dict() for c in store.list_conversations(person_id)]
        }

    @router.get("/api/people/{person_id}/brief")
    async def get_brief(person_id: str, force: bool = Query(False)) -> dict:
        person = store.find_person_by_id(person_id)
        if person is None:
            raise HTTPException(status_code=404, detail="Person not found")
        conversations = store.list_conversations(person_id)
        try:
            result = await brief_service.get_brief(person, conversations, force=force)
        except NoProviderAvailableError as exc:
            raise HTTPException(status_code=503, detail=str(exc)) from exc
        except LLMProviderError as exc:
            logger.warning("Brief generation failed for %s: %s", person_id, exc)
            raise HTTPException(status_code=502, detail=f"Brief generation failed: {exc}") from exc
        return result.to_dict()

    @router.delete("/api/briefs/{person_id}")
    def clear_brief(person_id: str) -> dict:
        brief_service.cache.clear(person_id)
        return {"cleared": person_id}

    @router.delete("/api/briefs")
    def clear_all_briefs() -> dict:
        brief_service.cache.clear()
        return {"cleared": "all"}

    return router
