"""
FastAPI routes for the OINSTEC forms backend.

Endpoints:
- GET    /health                          — health check
- POST   /templates/validate              — validate a template without storing it
- GET    /templates                       — list templates (active_only, search)
- POST   /templates                       — create a template
- GET    /templates/{id}                  — get one template
- PUT    /templates/{id}                  — update a template
- DELETE /templates/{id}                  — delete a template
- POST   /templates/{id}/toggle-active    — activate / deactivate
- POST   /templates/{id}/duplicate        — copy as a new inactive template
- POST   /templates/{id}/render           — visible widgets for a set of answers
- POST   /sessions                        — open a form session
- GET    /sessions/{id}                   — session snapshot with widgets
- DELETE /sessions/{id}                   — discard a session
- POST   /sessions/{id}/answers           — update one answer
- POST   /sessions/{id}/save              — save progress or complete
"""

import logging
from typing import Any

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from oinstec.core.form_state import (
    AnswerValidationError,
    IncompleteFormError,
    SessionReadOnlyError,
)
from oinstec.core.schema import FormTemplate, find_rule_problems
from oinstec.core.session import Session
from oinstec.core.widgets import render_form

logger = logging.getLogger(__name__)

router = APIRouter()

# These will be injected by the app factory
_template_repo = None
_session_store = None


def configure_routes(template_repo, session_store):
    """Inject the template repository and session store into the routes module.

    Called by the app factory during startup.
    """
    global _template_repo, _session_store
    _template_repo = template_repo
    _session_store = session_store


# --- Request Models ---


class ValidateTemplateRequest(BaseModel):
    """Request body for the /templates/validate endpoint."""

    template: dict[str, Any]


class RenderRequest(BaseModel):
    """Request body for the /templates/{id}/render endpoint."""

    answers: dict[str, Any] = Field(default_factory=dict)


class CreateSessionRequest(BaseModel):
    """Request body for opening a form session."""

    model_config = ConfigDict(populate_by_name=True)

    template_id: str = Field(..., alias="templateId")
    answers: dict[str, Any] | None = None


class AnswerRequest(BaseModel):
    """One answer update, sent per user interaction."""

    model_config = ConfigDict(populate_by_name=True)

    field_id: str = Field(..., alias="fieldId")
    value: Any = None


class SaveRequest(BaseModel):
    """Request body for saving a session."""

    complete: bool = False


# --- Helpers ---


def _require_configured() -> None:
    if _template_repo is None or _session_store is None:
        raise HTTPException(status_code=500, detail="Server not properly configured")


def _get_template_or_404(template_id: str) -> FormTemplate:
    _require_configured()
    template = _template_repo.get(template_id)
    if template is None:
        raise HTTPException(status_code=404, detail=f"Template '{template_id}' not found")
    return template


def _get_session_or_404(session_id: str) -> Session:
    _require_configured()
    session = _session_store.get_session(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail=f"Session '{session_id}' not found")
    return session


def _dump_template(template: FormTemplate) -> dict[str, Any]:
    return template.model_dump(mode="json", by_alias=True)


def _session_payload(session_id: str, session: Session) -> dict[str, Any]:
    form = session.form
    payload = form.snapshot()
    payload["sessionId"] = session_id
    payload["readonly"] = form.readonly
    payload["widgets"] = render_form(form.template, form.answers, readonly=form.readonly)
    return payload


def _validation_messages(error: ValidationError) -> list[str]:
    messages = []
    for err in error.errors():
        location = " -> ".join(str(part) for part in err["loc"])
        messages.append(f"{location}: {err['msg']}" if location else err["msg"])
    return messages


# --- Endpoints: templates ---


@router.post("/templates/validate")
async def validate_template(request: ValidateTemplateRequest):
    """Validate a template body and report visibility rule problems."""
    try:
        template = FormTemplate.model_validate(request.template)
    except ValidationError as e:
        return {"valid": False, "errors": _validation_messages(e), "warnings": []}

    return {"valid": True, "errors": [], "warnings": find_rule_problems(template)}


@router.get("/templates")
async def list_templates(active_only: bool = False, search: str | None = None):
    """List templates, optionally filtered to active ones or by a search term."""
    _require_configured()
    templates = _template_repo.list_templates(active_only=active_only, search=search)
    return {"templates": [_dump_template(t) for t in templates]}


@router.post("/templates", status_code=201)
async def create_template(body: dict[str, Any]):
    """Create a template from a JSON body."""
    _require_configured()
    try:
        template = _template_repo.create(body)
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=_validation_messages(e))
    except ValueError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return _dump_template(template)


@router.get("/templates/{template_id}")
async def get_template(template_id: str):
    return _dump_template(_get_template_or_404(template_id))


@router.put("/templates/{template_id}")
async def update_template(template_id: str, changes: dict[str, Any]):
    """Apply partial changes to a template."""
    _get_template_or_404(template_id)
    try:
        template = _template_repo.update(template_id, changes)
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=_validation_messages(e))
    if template is None:
        raise HTTPException(status_code=404, detail=f"Template '{template_id}' not found")
    return _dump_template(template)


@router.delete("/templates/{template_id}")
async def delete_template(template_id: str):
    _require_configured()
    deleted = _template_repo.delete(template_id)
    if not deleted:
        raise HTTPException(status_code=404, detail=f"Template '{template_id}' not found")
    return {"success": True}


@router.post("/templates/{template_id}/toggle-active")
async def toggle_template_active(template_id: str):
    """Flip a template between active and inactive."""
    template = _get_template_or_404(template_id)
    updated = _template_repo.set_active(template_id, not template.active)
    return _dump_template(updated)


@router.post("/templates/{template_id}/duplicate", status_code=201)
async def duplicate_template(template_id: str):
    _get_template_or_404(template_id)
    return _dump_template(_template_repo.duplicate(template_id))


@router.post("/templates/{template_id}/render")
async def render_template(template_id: str, request: RenderRequest):
    """Return the widgets currently visible for the given answers."""
    template = _get_template_or_404(template_id)
    return {"widgets": render_form(template, request.answers)}


# --- Endpoints: sessions ---


@router.post("/sessions", status_code=201)
async def create_session(request: CreateSessionRequest):
    """Open a form session for a template, optionally resuming saved answers."""
    template = _get_template_or_404(request.template_id)
    if not template.active:
        raise HTTPException(status_code=409, detail=f"Template '{template.id}' is not active")

    session_id, session = _session_store.create_session(template)
    if request.answers:
        _, rejected = session.form.set_answers_bulk(request.answers)
        if rejected:
            logger.warning("Session %s: rejected saved answers %s", session_id, rejected)

    return _session_payload(session_id, session)


@router.get("/sessions/{session_id}")
async def get_session(session_id: str):
    session = _get_session_or_404(session_id)
    return _session_payload(session_id, session)


@router.delete("/sessions/{session_id}")
async def delete_session(session_id: str):
    """Discard a form session."""
    _require_configured()
    deleted = _session_store.delete_session(session_id)
    return {
        "success": deleted,
        "message": "Session deleted" if deleted else "Session not found",
    }


@router.post("/sessions/{session_id}/answers")
async def set_answer(session_id: str, request: AnswerRequest):
    """Store one answer and return the re-evaluated form."""
    session = _get_session_or_404(session_id)
    try:
        session.form.set_answer(request.field_id, request.value)
    except SessionReadOnlyError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except AnswerValidationError as e:
        raise HTTPException(
            status_code=422,
            detail={"fieldId": e.field_id, "message": e.message},
        )
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))

    return _session_payload(session_id, session)


@router.post("/sessions/{session_id}/save")
async def save_session(session_id: str, request: SaveRequest):
    """Save progress, or complete the form when every required field is answered."""
    session = _get_session_or_404(session_id)
    try:
        session.form.save(complete=request.complete)
    except SessionReadOnlyError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except IncompleteFormError as e:
        raise HTTPException(
            status_code=422,
            detail={
                "message": str(e),
                "missing": [f.label or f.id for f in e.missing_fields],
            },
        )
    except Exception as e:
        logger.error("Error saving session %s: %s", session_id, e, exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error saving form: {str(e)}")

    return _session_payload(session_id, session)


@router.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "templates": _template_repo.count() if _template_repo else 0,
        "active_sessions": _session_store.count() if _session_store else 0,
    }
