from __future__ import annotations

import json
import logging
import os
import threading
from typing import Optional

from rapport.config import UserIdentity
from rapport.services.models import AnalysisResult, ConversationRecord, Person


class PersistenceError(RuntimeError):
    pass


class PeopleStore:
    """JSON-file entity store: one file per person and per conversation."""

    def __init__(self, data_dir: str, user: Optional[UserIdentity] = None) -> None:
        self._people_dir = os.path.join(data_dir, "people")
        self._conversations_dir = os.path.join(data_dir, "conversations")
        self._user = user or UserIdentity()
        self._lock = threading.RLock()
        self._logger = logging.getLogger("rapport.people")
        os.makedirs(self._people_dir, exist_ok=True)
        os.makedirs(self._conversations_dir, exist_ok=True)

    def _read_file(self, path: str) -> Optional[dict]:
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
            if isinstance(data, dict):
                return data
        except (OSError, json.JSONDecodeError) as exc:
            self._logger.warning("Failed to read record file: %s error=%s", path, exc)
        return None

    def _write_file(self, path: str, data: dict) -> None:
        os.makedirs(os.path.dirname(path), exist_ok=True)
        temp_path = f"{path}.tmp"
        try:
            with open(temp_path, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
            os.replace(temp_path, path)
        except (OSError, TypeError, ValueError):
            self._remove(temp_path)
            raise

    def _read_dir(self, directory: str) -> list[dict]:
        try:
            names = sorted(os.listdir(directory))
        except OSError as exc:
            self._logger.warning("Failed to list %s: %s", directory, exc)
            return []
        records = []
        for name in names:
            if not name.endswith(".json"):
                continue
            data = self._read_file(os.path.join(directory, name))
            if data is not None:
                records.append(data)
        return records

    def _person_path(self, person_id: str) -> str:
        return os.path.join(self._people_dir, f"{person_id}.json")

    def _conversation_path(self, conversation_id: str) -> str:
        return os.path.join(self._conversations_dir, f"{conversation_id}.json")

    def list_people(self) -> list[Person]:
        with self._lock:
            return [Person.from_dict(data) for data in self._read_dir(self._people_dir)]

    def find_person_by_id(self, person_id: str) -> Optional[Person]:
        with self._lock:
            data = self._read_file(self._person_path(person_id))
        return Person.from_dict(data) if data else None

    def find_person_by_name(self, name: str) -> Optional[Person]:
        wanted = name.strip().lower()
        for person in self.list_people():
            if person.name.strip().lower() == wanted:
                return person
        return None

    def create_person(self, name: str, role: Optional[str] = None, email: Optional[str] = None) -> Person:
        person = Person(name=name.strip(), role=role, email=email)
        try:
            with self._lock:
                self._write_file(self._person_path(person.id), person.to_dict())
        except (OSError, TypeError, ValueError) as exc:
            raise PersistenceError(f"Failed to save person {name}: {exc}") from exc
        self._logger.info("Created person %s (%s)", person.name, person.id)
        return person

    def add_conversation(self, conversation: ConversationRecord) -> ConversationRecord:
        try:
            with self._lock:
                self._write_file(self._conversation_path(conversation.id), conversation.to_dict())
        except (OSError, TypeError, ValueError) as exc:
            raise PersistenceError(f"Failed to save conversation: {exc}") from exc
        return conversation

    def list_conversations(self, person_id: str) -> list[ConversationRecord]:
        with self._lock:
            records = [
                ConversationRecord.from_dict(data)
                for data in self._read_dir(self._conversations_dir)
                if data.get("person_id") == person_id
            ]
        records.sort(key=lambda c: c.date, reverse=True)
        return records

    def conversation_count(self, person_id: str) -> int:
        return len(self.list_conversations(person_id))

    def _remove(self, path: str) -> None:
        try:
            os.remove(path)
        except FileNotFoundError:
            pass

    def save_analysis(self, result: AnalysisResult) -> list[ConversationRecord]:
        """Persist one conversation record per participant.

        Either every record is written or none is: on failure the people and
        conversations created by this call are removed again.
        """
        written: list[str] = []
        saved: list[ConversationRecord] = []
        links = []
        with self._lock:
            try:
                for participant in result.participants:
                    if participant.is_current_user or self._user.is_current_user(participant.name):
                        continue
                    person = None
                    if participant.person_id:
                        person = self.find_person_by_id(participant.person_id)
                    if person is None:
                        person = self.find_person_by_name(participant.name)
                    if person is None:
                        person = self.create_person(participant.name)
                        written.append(self._person_path(person.id))

                    conversation = ConversationRecord(
                        person_id=person.id,
                        date=result.transcript.timestamp,
                        title=result.suggested_title,
                        summary=result.summary,
                        notes=result.user_notes,
                        sentiment_label=result.sentiment.overall_sentiment,
                        sentiment_score=result.sentiment.sentiment_score,
                        engagement_level=result.sentiment.engagement_level,
                        key_topics=list(result.key_points),
                        action_items=list(result.action_items),
                    )
                    self.add_conversation(conversation)
                    written.append(self._conversation_path(conversation.id))
                    links.append((participant, person.id))
                    saved.append(conversation)
            except (OSError, PersistenceError) as exc:
                self._logger.error("Saving analysis failed; rolling back %d files", len(written))
                for path in reversed(written):
                    self._remove(path)
                if isinstance(exc, PersistenceError):
                    raise
                raise PersistenceError(f"Failed to save analysis: {exc}") from exc

        for participant, person_id in links:
            participant.person_id = person_id

        self._logger.info("Saved analysis as %d conversations", len(saved))
        return saved
