import time
from datetime import datetime, timezone
from typing import Annotated, Optional
from fastapi import APIRouter, Depends, Request

from agents.code_explainer_agent import CodeExplainerAgent
from models.explain_models import ExplainCodeRequest, ExplainCodeResponse, ErrorResponse, HealthResponse
from utils.config import Settings
from utils.errors import CodeRequiredError

router = APIRouter(prefix="/api", tags=["Code explanation"])


def get_explainer(request: Request) -> CodeExplainerAgent:
    return request.app.state.explainer

def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


@router.post(
    "/explain-code",
    response_model=ExplainCodeResponse,
    responses={
        400: {"model": ErrorResponse},
        413: {"model": ErrorResponse},
        429: {"description": "Too many requests from this address"},
        500: {"model": ErrorResponse},
        504: {"model": ErrorResponse},
    },
)
async def explain_code(
    explainer: Annotated[CodeExplainerAgent, Depends(get_explainer)],
    req: Optional[ExplainCodeRequest] = None,
):
    if req is None or not req.code:
        raise CodeRequiredError()

    explanation = await explainer.explain_code(req.code, req.language)
    return ExplainCodeResponse(explanation=explanation, language=req.language or "unknown")


@router.get("/health", response_model=HealthResponse)
async def health_check(
    request: Request,
    settings: Annotated[Settings, Depends(get_app_settings)]
):
    timestamp = datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")
    return HealthResponse(
        timestamp=timestamp,
        hasApiKey=settings.has_api_key,
        uptime=time.monotonic() - request.app.state.started_at,
    )
