from __future__ import annotations

import logging
import os
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse, StreamingResponse

from ...domain.chat_models import AssistantRequest, PromptConfig, PromptConfigUpdate, QuickActionsResponse
from ...domain.operations import AuditLogEntry
from ...infrastructure.config_store import PROMPT_KEYS, get_prompt_config_store
from ...infrastructure.store import get_store
from ...observability.metrics import UPSTREAM_ERRORS
from ...security.auth import Principal, get_optional_principal
from ...security.rate_limit import RateLimitExceeded, rate_limit_action
from ...security.rbac import Permission, require_permission
from ...services.assistant_orchestrator import AssistantOrchestrator
from ...services.llm_gateway import GatewayNotConfigured, QuotaExhausted, RateLimited, UpstreamGenerationError
from ...services.page_catalog import quick_actions_for

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/assistant", tags=["assistant"])

_MESSAGES: Dict[str, Dict[str, str]] = {
    "en": {
        "rate_limited": "Request limit exceeded. Please try again later.",
        "quota_exhausted": "Insufficient credits. Please add funds to your workspace.",
        "upstream_failure": "The assistant could not generate a reply. Please try again.",
        "not_configured": "The assistant is not configured on this server.",
        "invalid_request": "The request is not valid.",
    },
    "es": {
        "rate_limited": "Límite de solicitudes excedido. Por favor intenta de nuevo más tarde.",
        "quota_exhausted": "Créditos insuficientes. Por favor agrega fondos a tu workspace.",
        "upstream_failure": "El asistente no pudo generar una respuesta. Por favor intenta de nuevo.",
        "not_configured": "El asistente no está configurado en este servidor.",
        "invalid_request": "La solicitud no es válida.",
    },
}


def localized(key: str) -> str:
    locale = (os.getenv("ASSISTANT_LOCALE") or "en").lower()[:2]
    table = _MESSAGES.get(locale, _MESSAGES["en"])
    return table.get(key, _MESSAGES["en"][key])


def error_response(status_code: int, key: str, headers: Optional[Dict[str, str]] = None) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": localized(key)}, headers=headers)


def get_orchestrator() -> AssistantOrchestrator:
    return AssistantOrchestrator()


@router.post("/chat", response_class=StreamingResponse)
def chat(
    payload: AssistantRequest,
    request: Request,
    principal: Optional[Principal] = Depends(get_optional_principal),
    orchestrator: AssistantOrchestrator = Depends(get_orchestrator),
):
    identifier = principal.user_id if principal else (request.client.host if request.client else "anonymous")
    try:
        rate_limit_action(
            "assistant_chat",
            identifier,
            limit_env="ASSISTANT_RATE_LIMIT_MAX",
            window_env="ASSISTANT_RATE_LIMIT_WINDOW_SECONDS",
            default_limit=30,
            default_window_seconds=60,
        )
    except RateLimitExceeded as exc:
        return error_response(
            status.HTTP_429_TOO_MANY_REQUESTS,
            "rate_limited",
            headers={"Retry-After": str(exc.retry_after_seconds)},
        )

    try:
        relay = orchestrator.respond(payload, principal)
    except RateLimited:
        UPSTREAM_ERRORS.labels(kind="rate_limited").inc()
        return error_response(status.HTTP_429_TOO_MANY_REQUESTS, "rate_limited")
    except QuotaExhausted:
        UPSTREAM_ERRORS.labels(kind="quota_exhausted").inc()
        return error_response(status.HTTP_402_PAYMENT_REQUIRED, "quota_exhausted")
    except UpstreamGenerationError as exc:
        UPSTREAM_ERRORS.labels(kind=exc.kind).inc()
        logger.warning("upstream_error", extra={"status": exc.status_code, "err": str(exc)})
        return error_response(status.HTTP_502_BAD_GATEWAY, "upstream_failure")
    except GatewayNotConfigured as exc:
        logger.error("gateway_not_configured", extra={"err": str(exc)})
        return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "not_configured")

    return StreamingResponse(relay.body, media_type=relay.media_type, headers=relay.headers)


@router.get("/quick-actions", response_model=QuickActionsResponse)
def quick_actions(
    page: str = Query("/"),
    project_name: Optional[str] = Query(None, alias="projectName"),
) -> QuickActionsResponse:
    return quick_actions_for(page, project_name)


@router.get("/audit", response_model=List[AuditLogEntry])
def list_audit(
    limit: int = Query(50, ge=1, le=500),
    principal: Principal = Depends(require_permission(Permission.AUDIT_READ)),
) -> List[AuditLogEntry]:
    return get_store().list_audit(principal.tenant_id, limit=limit)


@router.get("/prompts/{key}", response_model=PromptConfig)
def get_prompt(key: str, _: Principal = Depends(require_permission(Permission.ADMIN))) -> PromptConfig:
    if key not in PROMPT_KEYS:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Unknown prompt key")
    entry = get_prompt_config_store().get(key)
    if entry is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Prompt not customized")
    return entry


@router.put("/prompts/{key}", response_model=PromptConfig)
def put_prompt(
    key: str,
    payload: PromptConfigUpdate,
    principal: Principal = Depends(require_permission(Permission.ADMIN)),
) -> PromptConfig:
    try:
        return get_prompt_config_store().put(key, payload.prompt, updated_by=principal.user_id)
    except KeyError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Unknown prompt key") from exc
