import copy
import math
from collections import defaultdict

import pytest
from fastapi.testclient import TestClient

from catalog import Catalog
from metrics import MetricService


# ========== In-memory pipeline evaluator ==========
# Covers only the stages and operators the aggregation builders emit.

def _get_path(value, path):
    for part in path.split("."):
        if not isinstance(value, dict):
            return None
        value = value.get(part)
    return value


def _resolve(expr, doc, variables):
    if isinstance(expr, str):
        if expr.startswith("$$"):
            name, _, path = expr[2:].partition(".")
            value = variables[name]
            return _get_path(value, path) if path else value
        if expr.startswith("$"):
            return _get_path(doc, expr[1:])
        return expr
    if isinstance(expr, list):
        return [_resolve(e, doc, variables) for e in expr]
    if isinstance(expr, dict):
        if len(expr) == 1:
            op, arg = next(iter(expr.items()))
            if op.startswith("$"):
                return OPERATORS[op](arg, doc, variables)
        return {k: _resolve(v, doc, variables) for k, v in expr.items()}
    return expr


def _switch(arg, doc, variables):
    for branch in arg["branches"]:
        if _resolve(branch["case"], doc, variables):
            return _resolve(branch["then"], doc, variables)
    return _resolve(arg["default"], doc, variables)


def _map(arg, doc, variables):
    items = _resolve(arg["input"], doc, variables) or []
    return [_resolve(arg["in"], doc, {**variables, arg["as"]: item}) for item in items]


def _filter(arg, doc, variables):
    items = _resolve(arg["input"], doc, variables) or []
    return [item for item in items if _resolve(arg["cond"], doc, {**variables, arg["as"]: item})]


def _reduce(arg, doc, variables):
    acc = _resolve(arg["initialValue"], doc, variables)
    for item in _resolve(arg["input"], doc, variables) or []:
        acc = _resolve(arg["in"], doc, {**variables, "value": acc, "this": item})
    return acc


def _args(arg, doc, variables):
    return _resolve(arg if isinstance(arg, list) else [arg], doc, variables)


OPERATORS = {
    "$literal": lambda arg, doc, v: arg,
    "$eq": lambda arg, doc, v: (lambda a, b: a == b)(*_args(arg, doc, v)),
    "$in": lambda arg, doc, v: (lambda x, arr: x in arr)(*_args(arg, doc, v)),
    "$switch": _switch,
    "$map": _map,
    "$filter": _filter,
    "$reduce": _reduce,
    "$add": lambda arg, doc, v: sum(_args(arg, doc, v)),
    "$multiply": lambda arg, doc, v: math.prod(_args(arg, doc, v)),
    "$divide": lambda arg, doc, v: (lambda a, b: a / b)(*_args(arg, doc, v)),
    "$round": lambda arg, doc, v: (lambda x, places: round(x, places))(*_args(arg, doc, v)),
    "$trunc": lambda arg, doc, v: math.trunc(_args(arg, doc, v)[0]),
    "$toInt": lambda arg, doc, v: int(_args(arg, doc, v)[0]),
}


def _matches(doc, query):
    for key, cond in query.items():
        value = _get_path(doc, key)
        if isinstance(cond, dict) and "$in" in cond:
            if value not in cond["$in"]:
                return False
        elif value != cond:
            return False
    return True


def _stage_match(docs, query):
    return [d for d in docs if _matches(d, query)]


def _stage_group(docs, spec):
    groups = {}
    for doc in docs:
        key = _resolve(spec["_id"], doc, {})
        out = groups.setdefault(key, {"_id": key})
        for name, acc in spec.items():
            if name == "_id":
                continue
            op, arg = next(iter(acc.items()))
            value = _resolve(arg, doc, {})
            if op == "$sum":
                out[name] = out.get(name, 0) + (value if isinstance(value, (int, float)) else 0)
            elif op == "$push":
                out.setdefault(name, []).append(value)
    return list(groups.values())


def _stage_sort(docs, spec):
    for key, direction in reversed(list(spec.items())):
        docs = sorted(docs, key=lambda d: (isinstance(_get_path(d, key), str), _get_path(d, key)), reverse=direction < 0)
    return docs


def _stage_project(docs, spec):
    projected = []
    for doc in docs:
        out = {}
        if spec.get("_id", 1) and "_id" in doc:
            out["_id"] = doc["_id"]
        for name, expr in spec.items():
            if name == "_id":
                continue
            if expr is True or expr == 1:
                if name in doc:
                    out[name] = doc[name]
            else:
                out[name] = _resolve(expr, doc, {})
        projected.append(out)
    return projected


STAGES = {
    "$match": _stage_match,
    "$group": _stage_group,
    "$sort": _stage_sort,
    "$project": _stage_project,
}


class FakeStore:
    def __init__(self):
        self.collections = defaultdict(list)
        self.executed = []

    def ping(self):
        return True

    def find_one(self, collection, query):
        for doc in self.collections[collection]:
            if _matches(doc, query):
                return copy.deepcopy(doc)
        return None

    def find(self, collection, query):
        return [copy.deepcopy(d) for d in self.collections[collection] if _matches(d, query)]

    def count(self, collection, query):
        return len(self.find(collection, query))

    def insert_one(self, collection, document):
        self.collections[collection].append(copy.deepcopy(document))
        return document["_id"]

    def insert_many(self, collection, documents):
        return [self.insert_one(collection, d) for d in documents]

    def update_one(self, collection, query, changes):
        for doc in self.collections[collection]:
            if _matches(doc, query):
                doc.update(copy.deepcopy(changes))
                return True
        return False

    def execute(self, pipeline):
        self.executed.append(pipeline)
        docs = copy.deepcopy(self.collections[pipeline.collection])
        for stage in pipeline.stages:
            op, arg = next(iter(stage.items()))
            docs = STAGES[op](docs, arg)
        return docs

    def ensure_indexes(self):
        pass


# ========== Fixtures ==========
@pytest.fixture
def store():
    return FakeStore()


@pytest.fixture
def catalog(store):
    return Catalog(store)


@pytest.fixture
def metric_service(store, catalog):
    return MetricService(store, catalog)


@pytest.fixture
def client(store):
    from main import app, get_store

    app.dependency_overrides[get_store] = lambda: store
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def add_answers(store):
    def _add(form_id, question_id, user_id, *values):
        for value in values:
            store.insert_one("answers", {
                "_id": f"{user_id}-{question_id}-{len(store.collections['answers'])}",
                "formId": form_id,
                "questionId": question_id,
                "userId": user_id,
                "answer": value,
            })
    return _add
