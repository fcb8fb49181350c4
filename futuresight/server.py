"""FutureSight Server - FastAPI boundary for AI flows and calendar import.

Key features:
- AI flows: motivational quotes, news/email/text summaries, greetings,
  conversational chat, and event extraction from natural language
- Per-request LLM API key override (``apiKey`` in the request body)
- .ics calendar import with line-ending repair and unfolding

Failures are mapped to a small set of user-facing messages and status codes;
raw vendor errors are only logged.
"""

import logging
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from . import config
from .calendar_import import import_calendar
from .exceptions import (
    CalendarErrorKind,
    CalendarImportError,
    FailureKind,
    FlowFailure,
    FlowRequestError,
)
from .flow_service import get_flow_service

logger = logging.getLogger(__name__)


# ============================================================================
# FastAPI App Setup
# ============================================================================


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Configure logging on startup."""
    logging.basicConfig(
        level=config.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    yield


app = FastAPI(
    title="FutureSight",
    description="AI flow gateway and calendar import service for the Calendar.ai app",
    version=config.APP_VERSION,
    lifespan=lifespan,
)


# ============================================================================
# Pydantic Models - Requests
# ============================================================================


class FlowRequest(BaseModel):
    """Fields shared by every AI flow request."""
    apiKey: str | None = Field(None, description="Optional user-provided LLM API key")


class MotivationalQuoteRequest(FlowRequest):
    topic: str = Field(..., description="Topic for the quote")


class SummarizeNewsRequest(FlowRequest):
    title: str = Field(..., description="Article title")
    content: str = Field(..., description="Article content or existing summary")


class SummarizeEmailRequest(FlowRequest):
    subject: str = Field(..., description="Email subject")
    snippet: str = Field(..., description="Email snippet or body")


class SummarizeTextRequest(FlowRequest):
    textToSummarize: str = Field(..., description="Text to summarize")


class GreetingRequest(FlowRequest):
    name: str = Field(..., description="User's display name")


class ChatMessage(BaseModel):
    """A previous message in the conversation."""
    role: str = "user"
    content: str = ""


class ChatRequest(FlowRequest):
    prompt: str = Field(..., description="The user's new message")
    chatHistory: list[ChatMessage] = Field(default_factory=list)


class CreateEventRequest(FlowRequest):
    prompt: str = Field(..., description="Natural language event request")
    timezone: str | None = Field(None, description="IANA timezone, e.g. 'America/New_York'")


class ParseIcsRequest(BaseModel):
    icsContent: str = Field(..., description="Raw .ics file contents")


# ============================================================================
# Pydantic Models - Responses
# ============================================================================


class HealthResponse(BaseModel):
    """Health check response."""
    status: str = "ok"
    version: str = config.APP_VERSION


class FlowResponse(BaseModel):
    """Response from AI flow endpoints."""
    success: bool
    data: dict[str, Any] | None = None
    message: str | None = None
    kind: str | None = None


class CalendarImportResponse(BaseModel):
    """Response from the calendar import endpoint."""
    success: bool
    data: dict[str, Any] | None = None
    message: str | None = None
    kind: str | None = None


# ============================================================================
# Helper Functions
# ============================================================================

FAILURE_STATUS_CODES = {
    FailureKind.RATE_LIMITED: 429,
    FailureKind.OVERLOADED: 503,
    FailureKind.INVALID_OUTPUT: 500,
    FailureKind.UNKNOWN: 500,
}

CALENDAR_ERROR_STATUS_CODES = {
    CalendarErrorKind.MALFORMED_FORMAT: 400,
    CalendarErrorKind.INCONSISTENT_LINE_ENDINGS: 400,
    CalendarErrorKind.UNKNOWN: 500,
}


async def run_flow(call, response: Response) -> FlowResponse:
    """Await a flow call and shape its outcome into a FlowResponse."""
    try:
        data = await call
        return FlowResponse(success=True, data=data)
    except FlowRequestError as e:
        response.status_code = 400
        return FlowResponse(success=False, message=str(e))
    except FlowFailure as e:
        response.status_code = FAILURE_STATUS_CODES[e.kind]
        return FlowResponse(success=False, message=e.message, kind=e.kind.value)
    except Exception:
        logger.exception("Unexpected error in AI flow")
        response.status_code = 500
        return FlowResponse(success=False, message="Failed to process AI request.")


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Report malformed request bodies as 400 in the standard failure shape."""
    problems = [
        f"{'.'.join(str(part) for part in error['loc'] if part != 'body')}: {error['msg']}"
        for error in exc.errors()
    ]
    return JSONResponse(
        status_code=400,
        content={"success": False, "message": "Invalid request. " + "; ".join(problems)},
    )


# ============================================================================
# Health Endpoint
# ============================================================================


@app.get("/health", response_model=HealthResponse, tags=["health"])
async def health_check():
    """Health check endpoint. Returns server status and version."""
    return HealthResponse()


# ============================================================================
# AI Flow Endpoints - Generation
# ============================================================================


@app.post(
    "/ai/motivational-quote",
    response_model=FlowResponse,
    response_model_exclude_none=True,
    tags=["ai"],
)
async def motivational_quote(request: MotivationalQuoteRequest, response: Response):
    """Generate a motivational quote about a topic."""
    service = get_flow_service()
    return await run_flow(
        service.generate_motivational_quote(request.topic, api_key=request.apiKey),
        response,
    )


@app.post(
    "/ai/summarize-news",
    response_model=FlowResponse,
    response_model_exclude_none=True,
    tags=["ai"],
)
async def summarize_news(request: SummarizeNewsRequest, response: Response):
    """Summarize a news article for a tech-focused reader."""
    service = get_flow_service()
    return await run_flow(
        service.summarize_news(request.title, request.content, api_key=request.apiKey),
        response,
    )


@app.post(
    "/ai/summarize-email",
    response_model=FlowResponse,
    response_model_exclude_none=True,
    tags=["ai"],
)
async def summarize_email(request: SummarizeEmailRequest, response: Response):
    """Summarize an email, focusing on questions, action items and deadlines."""
    service = get_flow_service()
    return await run_flow(
        service.summarize_email(request.subject, request.snippet, api_key=request.apiKey),
        response,
    )


@app.post(
    "/ai/summarize-text",
    response_model=FlowResponse,
    response_model_exclude_none=True,
    tags=["ai"],
)
async def summarize_text(request: SummarizeTextRequest, response: Response):
    """Summarize arbitrary text into one paragraph."""
    service = get_flow_service()
    return await run_flow(
        service.summarize_text(request.textToSummarize, api_key=request.apiKey),
        response,
    )


@app.post(
    "/ai/create-event",
    response_model=FlowResponse,
    response_model_exclude_none=True,
    tags=["ai"],
)
async def create_event(request: CreateEventRequest, response: Response):
    """Turn a natural language request into a structured calendar event.

    The event is only extracted, not saved.
    """
    prompt = request.prompt.strip()
    if not prompt:
        response.status_code = 400
        return FlowResponse(success=False, message="Prompt is required.")
    if len(prompt) < 5:
        response.status_code = 400
        return FlowResponse(success=False, message="Please provide a more descriptive prompt.")

    service = get_flow_service()
    return await run_flow(
        service.create_event_from_prompt(
            prompt, timezone=request.timezone, api_key=request.apiKey
        ),
        response,
    )


# ============================================================================
# AI Flow Endpoints - Chat
# ============================================================================


@app.post(
    "/ai/greeting",
    response_model=FlowResponse,
    response_model_exclude_none=True,
    tags=["ai"],
)
async def greeting(request: GreetingRequest, response: Response):
    """Generate a greeting phrase. LLM failures answer with 'Hello,'."""
    service = get_flow_service()
    return await run_flow(
        service.generate_greeting(request.name, api_key=request.apiKey),
        response,
    )


@app.post(
    "/ai/chat",
    response_model=FlowResponse,
    response_model_exclude_none=True,
    tags=["ai"],
)
async def chat(request: ChatRequest, response: Response):
    """Answer a chat message.

    LLM failures are answered with a canned apology, never an error status.
    """
    service = get_flow_service()
    history = [message.model_dump() for message in request.chatHistory]
    return await run_flow(
        service.converse(request.prompt, chat_history=history, api_key=request.apiKey),
        response,
    )


# ============================================================================
# Calendar Import Endpoint
# ============================================================================


@app.post(
    "/calendar/parse-ics",
    response_model=CalendarImportResponse,
    response_model_exclude_none=True,
    tags=["calendar"],
)
def parse_ics(request: ParseIcsRequest, response: Response):
    """Parse an uploaded .ics file into component records keyed by id.

    Empty files and files without events succeed with an explanatory message.
    """
    try:
        result = import_calendar(request.icsContent)
    except CalendarImportError as e:
        response.status_code = CALENDAR_ERROR_STATUS_CODES[e.kind]
        return CalendarImportResponse(success=False, message=e.message, kind=e.kind.value)
    except Exception as e:
        logger.exception("Unexpected error parsing ICS file")
        response.status_code = 500
        return CalendarImportResponse(
            success=False,
            message=str(e) or "An unknown error occurred during parsing.",
        )

    return CalendarImportResponse(success=True, data=result.data, message=result.message)


# ============================================================================
# Main Entry Point
# ============================================================================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=config.SERVER_HOST, port=config.SERVER_PORT)
