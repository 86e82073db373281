from __future__ import annotations

from datetime import UTC, datetime
import logging
import os

from dotenv import load_dotenv
from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, REGISTRY, generate_latest

from .routers.assistant import localized, router as assistant_router
from ..observability.metrics import metrics_middleware_factory
from ..services.streaming_relay import DATA_UPDATED_HEADER, UPDATED_ENTITIES_HEADER

load_dotenv()  # Load environment variables from .env if present (ASSISTANT_LLM_API_KEY, JWT_SECRET, etc.)

app = FastAPI(title="Contextual Assistant API", version="0.1.0")

logging.basicConfig(level=logging.INFO)

# Observability: request latency histogram
app.middleware("http")(metrics_middleware_factory())

app.include_router(assistant_router)
# Also expose the same router under /api
app.include_router(assistant_router, prefix="/api")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173", "http://127.0.0.1:5173", "http://localhost:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=[DATA_UPDATED_HEADER, UPDATED_ENTITIES_HEADER],
)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    # Malformed bodies are rejected before any side effect with a 400
    details = [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg", "")}
        for err in exc.errors()
    ]
    return JSONResponse(status_code=400, content={"error": localized("invalid_request"), "detail": details})


@app.get("/")
def root():
    return {"name": "Contextual Assistant API", "version": "0.1.0"}


@app.get("/health")
def health():
    return {
        "status": "ok",
        "timestamp": datetime.now(UTC).isoformat().replace("+00:00", "Z"),
        "components": {
            "api": "ok",
            "store": (os.getenv("ASSISTANT_STORE_IMPL") or "memory").lower(),
        },
    }


@app.get("/metrics")
def metrics() -> Response:
    # Expose Prometheus metrics
    data = generate_latest(REGISTRY)
    return Response(content=data, media_type=CONTENT_TYPE_LATEST)
