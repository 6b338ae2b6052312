import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from pymongo import ASCENDING
from pymongo.database import Database
from pymongo.errors import PyMongoError
from pymongo.operations import IndexModel

from errors import StoreError

logger = logging.getLogger(__name__)

USERS = "users"
QUESTIONS = "questions"
SECTIONS = "sections"
FORMS = "forms"
ANSWERS = "answers"
METRICS = "metrics"


# ========== Pipeline description ==========
@dataclass(frozen=True)
class Pipeline:
    """An ordered, immutable list of aggregation stages bound to one collection.

    Builder methods never mutate; each returns a new Pipeline with the extra
    stage appended, so a partially built pipeline can be shared safely.
    """
    collection: str
    stages: Tuple[Dict[str, Any], ...] = ()

    def _with(self, stage: Dict[str, Any]) -> "Pipeline":
        return Pipeline(self.collection, self.stages + (stage,))

    def match(self, query: Dict[str, Any]) -> "Pipeline":
        return self._with({"$match": query})

    def group(self, spec: Dict[str, Any]) -> "Pipeline":
        return self._with({"$group": spec})

    def sort(self, spec: Dict[str, int]) -> "Pipeline":
        return self._with({"$sort": spec})

    def project(self, spec: Dict[str, Any]) -> "Pipeline":
        return self._with({"$project": spec})

    def to_list(self) -> List[Dict[str, Any]]:
        return list(self.stages)


# ========== Mongo client wrapper ==========
@contextmanager
def _store_errors(operation: str, collection: str):
    try:
        yield
    except PyMongoError as e:
        logger.exception("store %s on %s failed", operation, collection)
        raise StoreError(f"Store {operation} on '{collection}' failed: {e}") from e


class MongoStore:
    def __init__(self, db: Database):
        self.db = db

    def ping(self) -> bool:
        with _store_errors("ping", "admin"):
            self.db.command("ping")
        return True

    def find_one(self, collection: str, query: dict) -> Optional[dict]:
        with _store_errors("find_one", collection):
            return self.db[collection].find_one(query)

    def find(self, collection: str, query: dict) -> List[dict]:
        with _store_errors("find", collection):
            return list(self.db[collection].find(query))

    def count(self, collection: str, query: dict) -> int:
        with _store_errors("count", collection):
            return self.db[collection].count_documents(query)

    def insert_one(self, collection: str, document: dict) -> str:
        with _store_errors("insert_one", collection):
            return self.db[collection].insert_one(document).inserted_id

    def insert_many(self, collection: str, documents: List[dict]) -> List[str]:
        if not documents:
            return []
        with _store_errors("insert_many", collection):
            return list(self.db[collection].insert_many(documents).inserted_ids)

    def update_one(self, collection: str, query: dict, changes: dict) -> bool:
        with _store_errors("update_one", collection):
            res = self.db[collection].update_one(query, {"$set": changes})
        return res.matched_count > 0

    def execute(self, pipeline: Pipeline) -> List[dict]:
        with _store_errors("aggregate", pipeline.collection):
            return list(self.db[pipeline.collection].aggregate(pipeline.to_list()))

    def ensure_indexes(self):
        with _store_errors("create_indexes", ANSWERS):
            self.db[USERS].create_indexes([IndexModel([("email", ASCENDING)], unique=True)])
            self.db[ANSWERS].create_indexes([
                IndexModel([("formId", ASCENDING), ("questionId", ASCENDING)]),
                IndexModel([("formId", ASCENDING), ("userId", ASCENDING)]),
            ])
            self.db[METRICS].create_indexes([IndexModel([("_id", ASCENDING), ("active", ASCENDING)])])
        logger.info("indexes ensured on %s", self.db.name)
