"""FastAPI application for national park fact extraction.

Usage (from project root):

    uvicorn park_facts.api.app:app --reload

Every error response has the body {"error": "<message>"}.
"""

import logging
from functools import lru_cache
from typing import Optional

import pymysql
from fastapi import Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from ..config import ExtractionSettings, load_settings
from ..db.repository import NationalParkRepository, ParkIdentity, UniquenessPolicy, park_row_from_outcome
from ..errors import (
    ConfigurationError,
    InputValidationError,
    MissingModelOutput,
    ParkExtractionError,
    SchemaValidationError,
    UpstreamProviderError,
    require_text,
)
from ..llm.base import ModelClient
from ..llm.llm_client import ParkModelClient
from ..services.extraction_orchestrator import ExtractionOrchestrator
from ..services.field_backfill_service import FieldBackfillService
from ..services.grounded_prompt import GroundedPromptRunner

logger = logging.getLogger(__name__)

app = FastAPI(title="Park Facts API", version="0.1.0")

ERROR_STATUS = {
    InputValidationError: 400,
    MissingModelOutput: 502,
    SchemaValidationError: 502,
    UpstreamProviderError: 502,
    ConfigurationError: 500,
}


# ---------------------------------------------------------------------------
# Request bodies
# ---------------------------------------------------------------------------


class _CamelRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ExtractRequest(_CamelRequest):
    park_name: Optional[str] = None
    wiki_url: Optional[str] = None


class PersistRequest(ExtractRequest):
    country: Optional[str] = None


class FieldSearchRequest(_CamelRequest):
    park_name: Optional[str] = None
    field: Optional[str] = None


class PromptRequest(_CamelRequest):
    prompt: Optional[str] = None


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------


@lru_cache(maxsize=1)
def get_settings() -> ExtractionSettings:
    return load_settings()


@lru_cache(maxsize=1)
def _model_client() -> ParkModelClient:
    return ParkModelClient.from_settings(get_settings())


def get_model_client() -> ModelClient:
    """Process-wide model client; holds no per-run state."""
    return _model_client()


def get_orchestrator(
    client: ModelClient = Depends(get_model_client),
    settings: ExtractionSettings = Depends(get_settings),
) -> ExtractionOrchestrator:
    return ExtractionOrchestrator(client, settings)


def get_backfill_service(
    client: ModelClient = Depends(get_model_client),
    settings: ExtractionSettings = Depends(get_settings),
) -> FieldBackfillService:
    return FieldBackfillService(client, settings)


def get_grounded_prompt_runner(
    client: ModelClient = Depends(get_model_client),
    settings: ExtractionSettings = Depends(get_settings),
) -> GroundedPromptRunner:
    return GroundedPromptRunner(client, settings)


def get_repository(settings: ExtractionSettings = Depends(get_settings)) -> NationalParkRepository:
    """Repository for reads; PARK_UNIQUE_KEY may be unset."""
    return NationalParkRepository(settings.unique_key)


def get_writable_repository(
    repository: NationalParkRepository = Depends(get_repository),
    settings: ExtractionSettings = Depends(get_settings),
) -> NationalParkRepository:
    """Repository for writes. Fails before any model call when PARK_UNIQUE_KEY is unset."""
    UniquenessPolicy.from_setting(settings.unique_key)
    return repository


# ---------------------------------------------------------------------------
# Error mapping
# ---------------------------------------------------------------------------


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


@app.exception_handler(ParkExtractionError)
async def handle_extraction_error(request: Request, exc: ParkExtractionError) -> JSONResponse:
    status_code = next((code for cls, code in ERROR_STATUS.items() if isinstance(exc, cls)), 500)
    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {type(exc).__name__}: {exc}")
    return _error(status_code, str(exc))


@app.exception_handler(pymysql.Error)
async def handle_database_error(request: Request, exc: pymysql.Error) -> JSONResponse:
    logger.error(f"{request.method} {request.url.path} database error: {type(exc).__name__}: {exc}")
    return _error(500, "Database error.")


@app.exception_handler(RequestValidationError)
async def handle_request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
    return _error(400, "Invalid request body.")


# ---------------------------------------------------------------------------
# Extraction
# ---------------------------------------------------------------------------


@app.post("/api/national-parks/extract")
def extract_park(
    body: ExtractRequest,
    orchestrator: ExtractionOrchestrator = Depends(get_orchestrator),
) -> JSONResponse:
    """Run the full pipeline and return the outcome without persisting it."""
    outcome = orchestrator.run(body.park_name, body.wiki_url)
    return JSONResponse(status_code=200, content=outcome.to_dict())


@app.post("/api/national-parks/extract/wiki")
def extract_and_persist(
    body: PersistRequest,
    repository: NationalParkRepository = Depends(get_writable_repository),
    orchestrator: ExtractionOrchestrator = Depends(get_orchestrator),
) -> JSONResponse:
    """Run the full pipeline and store the result. Nothing is stored on failure."""
    park_name = require_text(body.park_name, "parkName")
    wiki_url = require_text(body.wiki_url, "wikiUrl")

    outcome = orchestrator.run(park_name, wiki_url)
    park, created = repository.create_or_update(
        ParkIdentity(name=park_name, source_url=wiki_url, country=body.country),
        park_row_from_outcome(outcome),
    )
    logger.info(f"{'Created' if created else 'Updated'} park {park.id} ({park_name})")
    return JSONResponse(status_code=200, content={"id": park.id, "created": created})


@app.post("/api/national-parks/google-search")
def search_field(
    body: FieldSearchRequest,
    service: FieldBackfillService = Depends(get_backfill_service),
) -> JSONResponse:
    """Backfill one field with web search."""
    result = service.backfill(body.park_name, body.field)
    return JSONResponse(status_code=200, content={"result": result.to_dict()})


@app.post("/api/usage")
def grounded_prompt(
    body: PromptRequest,
    runner: GroundedPromptRunner = Depends(get_grounded_prompt_runner),
) -> JSONResponse:
    """Answer an ad-hoc prompt with url_context and google_search; reports usage and cost."""
    answer = runner.run(body.prompt)
    return JSONResponse(status_code=200, content=answer.to_dict())


# ---------------------------------------------------------------------------
# Stored parks
# ---------------------------------------------------------------------------


@app.get("/api/national-parks/list")
def list_parks(
    search: Optional[str] = None,
    skip: int = Query(0, ge=0),
    take: int = Query(20, ge=1, le=200),
    repository: NationalParkRepository = Depends(get_repository),
) -> JSONResponse:
    items, total = repository.search(search=search, skip=skip, take=take)
    return JSONResponse(status_code=200, content={"total": total, "items": [p.to_dict() for p in items]})


@app.get("/api/national-parks/count")
def count_parks(repository: NationalParkRepository = Depends(get_repository)) -> JSONResponse:
    return JSONResponse(status_code=200, content={"count": repository.count()})


@app.get("/api/national-parks/{park_id}")
def get_park(park_id: str, repository: NationalParkRepository = Depends(get_repository)) -> JSONResponse:
    park = repository.get(park_id)
    if park is None:
        return _error(404, "Park not found.")
    return JSONResponse(status_code=200, content=park.to_dict())


@app.delete("/api/national-parks/{park_id}")
def delete_park(park_id: str, repository: NationalParkRepository = Depends(get_repository)) -> JSONResponse:
    try:
        park = repository.delete(park_id)
    except KeyError:
        return _error(404, "Park not found.")
    return JSONResponse(status_code=200, content={"success": True, "id": park.id, "name": park.name})
