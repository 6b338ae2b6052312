import logging

from catalog import Catalog
from metrics import MetricService

logger = logging.getLogger(__name__)


# ========== Mock data ==========
def initialize_mock_data(store) -> dict:
    catalog = Catalog(store)
    metrics = MetricService(store, catalog)

    mood = catalog.create_question({
        "title": {"english": "How would you rate your mood today?"},
        "questionType": "single-choice",
        "options": [
            {"title": {"english": "Low"}, "optionValue": 1},
            {"title": {"english": "High"}, "optionValue": 2},
        ],
    })
    ratings = [
        catalog.create_question({
            "title": text,
            "questionType": "rating",
            "options": [{"title": str(v), "optionValue": v} for v in range(0, 6)],
        })
        for text in ("I have felt cheerful and in good spirits", "I have felt calm and relaxed")
    ]
    section = catalog.create_section({"title": "Wellbeing index", "questions": [q["_id"] for q in ratings]})
    form = catalog.create_form({
        "name": "wellbeing-demo",
        "title": "Wellbeing check-in",
        "description": "Demo assessment form",
        "sections": [section["_id"]],
    })

    for user_id, mood_value, scores in (("user123", 1, (3, 4)), ("user456", 2, (5, 5)), ("user789", 1, (1, 2))):
        answers = [{"questionId": mood["_id"], "answer": mood_value}]
        answers += [{"questionId": q["_id"], "answer": s} for q, s in zip(ratings, scores)]
        catalog.submit_answers(form["_id"], user_id, answers)

    breakdown = metrics.create_metric_definition({
        "title": "Mood breakdown",
        "description": "Share of respondents per mood option",
        "type": "question",
        "formId": form["_id"],
        "questionId": mood["_id"],
        "chartType": "pie",
    })
    index = metrics.create_metric_definition({
        "title": "Wellbeing index",
        "description": "Weighted sum of wellbeing ratings per respondent",
        "type": "section",
        "formId": form["_id"],
        "sectionId": section["_id"],
        "chartType": "question-ratings-summation",
    })
    logger.info("mock data initialized (form %s)", form["_id"])
    return {
        "formId": form["_id"],
        "questionId": mood["_id"],
        "sectionId": section["_id"],
        "metricIds": [breakdown["_id"], index["_id"]],
    }
