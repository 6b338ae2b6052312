import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional, Union

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from pymongo import MongoClient

from catalog import Catalog
from config import settings
from errors import AppError, StoreError
from metrics import MetricService
from seed import initialize_mock_data
from store import MongoStore

logging.basicConfig(level=settings.LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

# ========== DB ==========
client = MongoClient(settings.MONGO_URI)
store = MongoStore(client[settings.MONGO_DB_NAME])


def get_store():
    return store


def get_catalog(store=Depends(get_store)) -> Catalog:
    return Catalog(store)


def get_metric_service(store=Depends(get_store)) -> MetricService:
    return MetricService(store, Catalog(store))


@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.CREATE_INDEXES:
        store.ensure_indexes()
    if settings.USE_MOCK_DATA:
        initialize_mock_data(store)
    yield


# ========== APP ==========
app = FastAPI(title="Assessment Metrics API", version="1.0.0", lifespan=lifespan)
app.add_middleware(CORSMiddleware, allow_origins=settings.CORS_ORIGINS, allow_methods=["*"], allow_headers=["*"])


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    # store failures are already logged with traceback where they are raised
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    details = "; ".join(f"{'.'.join(str(p) for p in e['loc'][1:])}: {e['msg']}" for e in exc.errors())
    return JSONResponse(status_code=400, content={"status": "fail", "message": f"Invalid request body: {details}"})


def success(data: dict) -> dict:
    return {"status": "success", "data": data}


# ========== Pydantic Models ==========
Title = Union[str, Dict[str, str]]


class UserCreate(BaseModel):
    name: str
    surname: Optional[str] = None
    email: str


class OptionIn(BaseModel):
    title: Title
    optionValue: Union[int, float, str]


class QuestionCreate(BaseModel):
    title: Title
    description: Optional[str] = None
    questionType: str = "single-choice"
    options: List[OptionIn] = []


class SectionCreate(BaseModel):
    title: str
    description: Optional[str] = None
    questions: List[str] = Field(min_length=1)


class FormCreate(BaseModel):
    name: str
    title: str
    description: str
    sections: List[str] = Field(min_length=1)


class AnswerIn(BaseModel):
    questionId: str
    answer: Union[int, float, str]


class AnswerSubmission(BaseModel):
    userId: str
    answers: List[AnswerIn] = Field(min_length=1)


class MetricCreate(BaseModel):
    title: str
    description: str = ""
    type: Literal["question", "section"]
    formId: str
    questionId: Optional[str] = None
    sectionId: Optional[str] = None
    chartType: str


# ========== Routes ==========
@app.get("/")
async def root():
    return {"message": "Assessment Metrics API", "version": "1.0.0", "endpoints": {"create_metric": "POST /metrics", "metric_data": "GET /metrics/{metric_id}/data", "submit_answers": "POST /forms/{form_id}/answers"}}


@app.get("/health")
def health_check(store=Depends(get_store)):
    try:
        store.ping()
        return {"status": "healthy", "database": "connected", "timestamp": datetime.utcnow().isoformat()}
    except StoreError as e:
        raise HTTPException(503, f"Service unhealthy: {e.message}")


@app.post("/users", status_code=201)
def create_user(body: UserCreate, catalog: Catalog = Depends(get_catalog)):
    return success({"user": catalog.create_user(body.model_dump(exclude_none=True))})


@app.get("/users/{user_id}")
def get_user(user_id: str, catalog: Catalog = Depends(get_catalog)):
    return success({"user": catalog.get_user(user_id)})


@app.post("/questions", status_code=201)
def create_question(body: QuestionCreate, catalog: Catalog = Depends(get_catalog)):
    return success({"question": catalog.create_question(body.model_dump(exclude_none=True))})


@app.get("/questions/{question_id}")
def get_question(question_id: str, catalog: Catalog = Depends(get_catalog)):
    return success({"question": catalog.get_question(question_id)})


@app.post("/sections", status_code=201)
def create_section(body: SectionCreate, catalog: Catalog = Depends(get_catalog)):
    return success({"section": catalog.create_section(body.model_dump(exclude_none=True))})


@app.get("/sections/{section_id}")
def get_section(section_id: str, catalog: Catalog = Depends(get_catalog)):
    return success({"section": catalog.get_section(section_id)})


@app.post("/forms", status_code=201)
def create_form(body: FormCreate, catalog: Catalog = Depends(get_catalog)):
    return success({"form": catalog.create_form(body.model_dump())})


@app.get("/forms/{form_id}")
def get_form(form_id: str, catalog: Catalog = Depends(get_catalog)):
    return success({"form": catalog.get_form(form_id)})


@app.post("/forms/{form_id}/answers", status_code=201)
def submit_answers(form_id: str, body: AnswerSubmission, catalog: Catalog = Depends(get_catalog)):
    answers = [a.model_dump() for a in body.answers]
    ids = catalog.submit_answers(form_id, body.userId, answers)
    return success({"inserted": len(ids), "answerIds": ids})


@app.post("/metrics", status_code=201)
def create_metric(body: MetricCreate, metrics: MetricService = Depends(get_metric_service)):
    return success({"metric": metrics.create_metric_definition(body.model_dump())})


@app.get("/metrics/{metric_id}")
def get_metric(metric_id: str, metrics: MetricService = Depends(get_metric_service)):
    return success({"metric": metrics.get_metric(metric_id)})


@app.get("/metrics/{metric_id}/data")
def get_metric_data(metric_id: str, metrics: MetricService = Depends(get_metric_service)):
    return success(metrics.get_metric_data(metric_id))


@app.delete("/metrics/{metric_id}")
def delete_metric(metric_id: str, metrics: MetricService = Depends(get_metric_service)):
    metrics.deactivate_metric(metric_id)
    return {"status": "success", "message": "Metric deactivated successfully"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True, log_level="info")
