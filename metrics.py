import uuid
import logging
from datetime import datetime

from aggregation import QUESTION, SECTION, AggregationEngine
from errors import NotFoundError, ValidationError
from store import METRICS

logger = logging.getLogger(__name__)


class MetricService:
    def __init__(self, store, catalog, engine: AggregationEngine = None):
        self.store = store
        self.catalog = catalog
        self.engine = engine or AggregationEngine(store, catalog)

    def create_metric_definition(self, data: dict) -> dict:
        metric_type = data.get("type")
        if metric_type == QUESTION:
            ref_field, label = "questionId", "question"
            valid = self.catalog.validate_question_ids([data.get("questionId")])
        elif metric_type == SECTION:
            ref_field, label = "sectionId", "section"
            valid = self.catalog.validate_section_ids([data.get("sectionId")])
        else:
            raise ValidationError(f"Unknown metric type '{metric_type}'")

        if not valid:
            raise ValidationError(f"Invalid {label} Id in the request body")

        now = datetime.utcnow()
        metric = {
            "_id": str(uuid.uuid4()),
            "title": data.get("title"),
            "description": data.get("description", ""),
            "type": metric_type,
            "formId": data.get("formId"),
            ref_field: data[ref_field],
            "chartType": data.get("chartType"),
            "active": True,
            "createdAt": now,
            "updatedAt": now,
        }
        self.store.insert_one(METRICS, metric)
        logger.info("created %s metric %s (chartType=%s)", metric_type, metric["_id"], metric["chartType"])
        return metric

    def get_metric(self, metric_id: str) -> dict:
        metric = self.store.find_one(METRICS, {"_id": metric_id, "active": True})
        if not metric:
            raise NotFoundError(f"Metric with ID {metric_id} not found")
        return metric

    def deactivate_metric(self, metric_id: str):
        matched = self.store.update_one(
            METRICS,
            {"_id": metric_id, "active": True},
            {"active": False, "updatedAt": datetime.utcnow()},
        )
        if not matched:
            raise NotFoundError(f"Metric with ID {metric_id} not found")
        logger.info("deactivated metric %s", metric_id)

    def get_metric_data(self, metric_id: str) -> dict:
        metric = self.get_metric(metric_id)
        result = self.engine.run(metric)
        return {
            "id": metric["_id"],
            "title": metric.get("title"),
            "description": metric.get("description"),
            "chartType": metric.get("chartType"),
            "metricData": result.to_dict(),
        }
