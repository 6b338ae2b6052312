import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from catalog import display_text
from errors import NotFoundError
from store import ANSWERS, Pipeline

logger = logging.getLogger(__name__)

QUESTION = "question"
SECTION = "section"

PERCENTAGE_CHART_TYPES = frozenset({"table", "bar", "pie", "line"})
RATINGS_SUMMATION = "question-ratings-summation"

UNKNOWN_LABEL = "Unknown"
# every rating answer is scaled by this before summing into the index
ANSWER_WEIGHT = 4


# ========== Result variants ==========
@dataclass(frozen=True)
class PercentageBreakdown:
    counts: List[Dict[str, Any]]
    total_count: int
    labels: List[str]

    def to_dict(self) -> dict:
        return {"kind": "percentage", "counts": self.counts, "totalCount": self.total_count, "labels": self.labels}


@dataclass(frozen=True)
class RatingsSummation:
    respondents: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"kind": "ratings-summation", "respondents": self.respondents}


@dataclass(frozen=True)
class Unsupported:
    type: Optional[str]
    chart_type: Optional[str]

    def to_dict(self) -> dict:
        return {"kind": "unsupported", "type": self.type, "chartType": self.chart_type}


# ========== Pipeline builders ==========
def option_label_map(question: dict) -> Dict[str, str]:
    """optionValue (as string) -> display label, first option wins, in option order."""
    mapping = {}
    for option in question.get("options", []) or []:
        if option.get("optionValue") is None:
            continue
        mapping.setdefault(str(option["optionValue"]), display_text(option.get("title")))
    return mapping


def build_percentage_pipeline(form_id: str, question_id: str, question: dict) -> Pipeline:
    branches = [
        {"case": {"$eq": ["$_id", value]}, "then": label}
        for value, label in option_label_map(question).items()
    ]
    # $switch rejects an empty branch list
    label_expr = {"$switch": {"branches": branches, "default": UNKNOWN_LABEL}} if branches else {"$literal": UNKNOWN_LABEL}
    return (
        Pipeline(ANSWERS)
        .match({"formId": form_id, "questionId": question_id})
        .group({"_id": "$answer", "count": {"$sum": 1}})
        .sort({"_id": 1})
        .project({"label": label_expr, "count": 1, "_id": 0})
        .group({
            "_id": None,
            "counts": {"$push": {"label": "$label", "count": "$count"}},
            "totalCount": {"$sum": "$count"},
        })
        .project({
            "counts": {
                "$map": {
                    "input": "$counts",
                    "as": "item",
                    "in": {
                        "label": "$$item.label",
                        "count": "$$item.count",
                        "percent": {
                            "$round": [
                                {"$multiply": [{"$divide": ["$$item.count", "$totalCount"]}, 100]},
                                2,
                            ]
                        },
                    },
                }
            },
            "totalCount": 1,
            "_id": 0,
        })
    )


def build_ratings_summation_pipeline(form_id: str, question_ids: List[str]) -> Pipeline:
    return (
        Pipeline(ANSWERS)
        .match({"formId": form_id})
        .group({
            "_id": "$userId",
            "answers": {"$push": {"questionId": "$questionId", "answer": "$answer"}},
        })
        .project({
            "answers": {
                "$filter": {
                    "input": "$answers",
                    "as": "a",
                    "cond": {"$in": ["$$a.questionId", list(question_ids)]},
                }
            }
        })
        .project({
            "scores": {
                "$map": {
                    "input": "$answers",
                    "as": "a",
                    "in": {"$trunc": {"$multiply": [{"$toInt": "$$a.answer"}, ANSWER_WEIGHT]}},
                }
            }
        })
        .project({
            "WHOIndexTotalSum": {
                "$reduce": {
                    "input": "$scores",
                    "initialValue": 0,
                    "in": {"$add": ["$$value", "$$this"]},
                }
            }
        })
        .sort({"_id": 1})
    )


# ========== Engine ==========
class AggregationEngine:
    def __init__(self, store, catalog):
        self.store = store
        self.catalog = catalog

    def percentage_breakdown(self, form_id: str, question_id: str, question: dict) -> PercentageBreakdown:
        rows = self.store.execute(build_percentage_pipeline(form_id, question_id, question))
        labels = ["Group by " + display_text(question.get("title"))]
        if not rows or not rows[0].get("totalCount"):
            return PercentageBreakdown(counts=[], total_count=0, labels=labels)
        row = rows[0]
        return PercentageBreakdown(counts=row.get("counts", []), total_count=row["totalCount"], labels=labels)

    def ratings_summation(self, form_id: str, section: dict) -> RatingsSummation:
        question_ids = [q["_id"] for q in section.get("questions", [])]
        rows = self.store.execute(build_ratings_summation_pipeline(form_id, question_ids))
        return RatingsSummation(respondents=rows)

    def run(self, metric: dict):
        metric_type = metric.get("type")
        chart_type = metric.get("chartType")
        form_id = metric.get("formId")

        if metric_type == QUESTION:
            question_id = metric.get("questionId")
            question = self.catalog.fetch_question_details_by_id(question_id)
            if not question:
                raise NotFoundError(f"Question with ID {question_id} not found")
            if chart_type in PERCENTAGE_CHART_TYPES:
                return self.percentage_breakdown(form_id, question_id, question)

        elif metric_type == SECTION and chart_type == RATINGS_SUMMATION:
            section_id = metric.get("sectionId")
            section = self.catalog.fetch_section_details_by_id(section_id)
            if not section:
                raise NotFoundError(f"Section with ID {section_id} not found")
            return self.ratings_summation(form_id, section)

        logger.info("no aggregation for metric %s (type=%s, chartType=%s)", metric.get("_id"), metric_type, chart_type)
        return Unsupported(metric_type, chart_type)
