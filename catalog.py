import uuid
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from errors import NotFoundError, ValidationError
from store import ANSWERS, FORMS, QUESTIONS, SECTIONS, USERS

logger = logging.getLogger(__name__)


def display_text(value: Any) -> str:
    # titles are either plain strings or localized objects like {"english": "..."}
    if isinstance(value, dict):
        return value.get("english") or ""
    return value or ""


def _new_id() -> str:
    return str(uuid.uuid4())


class Catalog:
    """Reference data: users, questions, sections, forms and the answer store."""

    def __init__(self, store):
        self.store = store

    # ---------- lookups ----------
    def fetch_question_details_by_id(self, question_id: str) -> Optional[dict]:
        return self.store.find_one(QUESTIONS, {"_id": question_id})

    def fetch_section_details_by_id(self, section_id: str) -> Optional[dict]:
        section = self.store.find_one(SECTIONS, {"_id": section_id})
        if not section:
            return None
        ids = section.get("questions", []) or []
        found = {q["_id"]: q for q in self.store.find(QUESTIONS, {"_id": {"$in": ids}})} if ids else {}
        section["questions"] = [found[qid] for qid in ids if qid in found]
        return section

    def _all_exist(self, collection: str, ids: List[str]) -> bool:
        unique = list(dict.fromkeys(i for i in ids or [] if i))
        if not unique or any(not i for i in ids):
            return False
        return self.store.count(collection, {"_id": {"$in": unique}}) == len(unique)

    def validate_question_ids(self, ids: List[str]) -> bool:
        return self._all_exist(QUESTIONS, ids)

    def validate_section_ids(self, ids: List[str]) -> bool:
        return self._all_exist(SECTIONS, ids)

    def _get(self, collection: str, doc_id: str, what: str) -> dict:
        doc = self.store.find_one(collection, {"_id": doc_id})
        if not doc:
            raise NotFoundError(f"{what} with ID {doc_id} not found")
        return doc

    # ---------- users ----------
    def create_user(self, data: dict) -> dict:
        if self.store.count(USERS, {"email": data["email"]}):
            raise ValidationError(f"A user with email {data['email']} already exists")
        user = {**data, "_id": _new_id(), "createdAt": datetime.utcnow()}
        self.store.insert_one(USERS, user)
        return user

    def get_user(self, user_id: str) -> dict:
        return self._get(USERS, user_id, "User")

    # ---------- questions / sections / forms ----------
    def create_question(self, data: dict) -> dict:
        question = {**data, "_id": _new_id(), "createdAt": datetime.utcnow()}
        self.store.insert_one(QUESTIONS, question)
        return question

    def get_question(self, question_id: str) -> dict:
        return self._get(QUESTIONS, question_id, "Question")

    def create_section(self, data: dict) -> dict:
        if not self.validate_question_ids(data.get("questions", [])):
            raise ValidationError("Invalid question Id in the request body")
        section = {**data, "_id": _new_id(), "createdAt": datetime.utcnow()}
        self.store.insert_one(SECTIONS, section)
        return section

    def get_section(self, section_id: str) -> dict:
        section = self.fetch_section_details_by_id(section_id)
        if not section:
            raise NotFoundError(f"Section with ID {section_id} not found")
        return section

    def create_form(self, data: dict) -> dict:
        if not self.validate_section_ids(data.get("sections", [])):
            raise ValidationError("Invalid section Id in the request body")
        now = datetime.utcnow()
        form = {**data, "_id": _new_id(), "createdDate": now, "updatedDate": now}
        self.store.insert_one(FORMS, form)
        return form

    def get_form(self, form_id: str) -> dict:
        return self._get(FORMS, form_id, "Assessment form")

    # ---------- answers ----------
    def submit_answers(self, form_id: str, user_id: str, answers: List[Dict[str, Any]]) -> List[str]:
        self.get_form(form_id)
        question_ids = list(dict.fromkeys(a["questionId"] for a in answers))
        if not self.validate_question_ids(question_ids):
            raise ValidationError("Invalid question Id in the submitted answers")
        now = datetime.utcnow()
        docs = [{
            "_id": _new_id(),
            "formId": form_id,
            "questionId": a["questionId"],
            "userId": user_id,
            # option codes are compared as strings by the aggregation pipelines
            "answer": str(a["answer"]),
            "createdAt": now,
        } for a in answers]
        ids = self.store.insert_many(ANSWERS, docs)
        logger.info("stored %d answers for form %s from user %s", len(ids), form_id, user_id)
        return ids
