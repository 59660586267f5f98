"""Validation and run endpoints."""

import logging

from fastapi import APIRouter, Depends, HTTPException

from ..dependencies import get_engine
from ..models import (
    MigrationRequestBody,
    RunResponse,
    TemplateListResponse,
    TemplateSummary,
    ValidationResponse,
)
from ...engine import MigrationEngine, MigrationRequest
from ...exceptions import AuthError, ConcurrencyError, ConfigurationError

logger = logging.getLogger(__name__)

router = APIRouter()


def _request(body: MigrationRequestBody) -> MigrationRequest:
    return MigrationRequest(
        template_id=body.template_id,
        source_org_id=body.source_org_id,
        target_org_id=body.target_org_id,
        selected_record_ids=list(body.selected_record_ids),
    )


@router.post("/validate", response_model=ValidationResponse)
async def validate_selection(body: MigrationRequestBody, engine: MigrationEngine = Depends(get_engine)):
    """Validate a record selection against a template."""
    try:
        result = await engine.validate(_request(body))
    except ConfigurationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except AuthError as e:
        raise HTTPException(status_code=401, detail=str(e))
    return result.to_dict()


@router.post("/runs", response_model=RunResponse)
async def start_run(body: MigrationRequestBody, engine: MigrationEngine = Depends(get_engine)):
    """Run a migration and return its result."""
    try:
        result = await engine.run(_request(body))
    except ConcurrencyError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except ConfigurationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return result.to_dict(engine.config.max_error_samples)


@router.get("/runs/{run_id}", response_model=RunResponse)
async def get_run(run_id: str, engine: MigrationEngine = Depends(get_engine)):
    """Get a run result."""
    run = engine.get_run(run_id)
    if not run:
        raise HTTPException(status_code=404, detail="Run not found")
    return run.to_dict(engine.config.max_error_samples)


@router.get("/templates", response_model=TemplateListResponse)
async def list_templates(engine: MigrationEngine = Depends(get_engine)):
    """List registered templates."""
    templates = []
    for template_id in engine.templates.list_templates():
        template = engine.templates.get(template_id)
        templates.append(TemplateSummary(
            id=template.id,
            name=template.name,
            description=template.description,
            version=template.version,
            category=template.category,
            steps=list(template.execution_order),
        ))
    return TemplateListResponse(templates=templates, total=len(templates))
