"""FastAPI entrypoint for the chat, trace and metrics endpoints."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from dataclasses import asdict
from typing import Any

from fastapi import FastAPI, HTTPException, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from legal_agent.api.streaming import stream_answer
from legal_agent.config import Settings
from legal_agent.obs.logging import configure_logging
from legal_agent.services import ChatServices, build_services

logger = logging.getLogger(__name__)


class FilePayload(BaseModel):
    data: str
    mimeType: str = Field(min_length=1)


class HistoryTurn(BaseModel):
    role: str
    parts: list[dict[str, Any]]


class ChatRequestError(ValueError):
    """A rejected chat request; carries the HTTP status to answer with."""

    def __init__(self, message: str, status_code: int = 400) -> None:
        super().__init__(message)
        self.status_code = status_code


_FILES_ADAPTER = TypeAdapter(list[FilePayload])
_HISTORY_ADAPTER = TypeAdapter(list[HistoryTurn])


def parse_chat_request(raw: Any) -> dict[str, Any]:
    """Validate a decoded chat body and return normalized planner arguments."""
    if not isinstance(raw, dict):
        raise ChatRequestError("Bad JSON")

    uid = raw.get("uid")
    conversation_id = raw.get("conversationId")
    if not isinstance(uid, str) or not uid or not isinstance(conversation_id, str) or not conversation_id:
        raise ChatRequestError("uid / conversationId missing")

    files: list[dict[str, str]] = []
    files_error: ValidationError | None = None
    if raw.get("files") is not None:
        try:
            files = [item.model_dump() for item in _FILES_ADAPTER.validate_python(raw["files"])]
        except ValidationError as exc:
            files_error = exc

    # Only a valid, non-empty files array excuses an empty message.
    message = raw.get("message")
    if not isinstance(message, str) or (not message.strip() and not files):
        raise ChatRequestError("Empty message")
    if files_error is not None:
        raise ChatRequestError("Bad files array") from files_error

    try:
        history = [turn.model_dump() for turn in _HISTORY_ADAPTER.validate_python(raw.get("history") or [])]
    except ValidationError:
        history = []

    return {
        "message": message,
        "uid": uid,
        "conversation_id": conversation_id,
        "history": history,
        "files": files,
    }


def create_app(services: ChatServices | None = None) -> FastAPI:
    """Build the API; services are created from the environment unless injected."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if getattr(app.state, "services", None) is None:
            settings = Settings.from_env()
            configure_logging(settings.log_level)
            app.state.services = build_services(settings)
        yield

    app = FastAPI(title="Legal Research Assistant", version="0.1.0", lifespan=lifespan)
    app.state.services = services

    def _services(request: Request) -> ChatServices:
        current = request.app.state.services
        if current is None:
            raise HTTPException(status_code=503, detail="Services not initialized")
        return current

    @app.get("/health")
    def health(request: Request) -> dict[str, Any]:
        current = _services(request)
        return {
            "status": "ok",
            "llm_configured": current.planner is not None,
            "trace_count": len(current.trace_store.list_recent(limit=1000)),
        }

    @app.post("/api/chat")
    async def chat(request: Request) -> Any:
        current = _services(request)
        if current.planner is None:
            return JSONResponse({"error": "OPENAI_API_KEY missing"}, status_code=500)

        try:
            raw = await request.json()
        except ValueError:
            return JSONResponse({"error": "Bad JSON"}, status_code=400)

        try:
            args = parse_chat_request(raw)
        except ChatRequestError as exc:
            return JSONResponse({"error": str(exc)}, status_code=exc.status_code)

        try:
            result = await run_in_threadpool(
                current.planner.invoke,
                args["message"],
                uid=args["uid"],
                conversation_id=args["conversation_id"],
                history=args["history"],
                files=args["files"],
            )
        except Exception as exc:
            logger.exception("Chat request failed for conversation %s", args["conversation_id"])
            return JSONResponse(
                {"error": "Chat request failed", "detail": str(exc)}, status_code=500
            )

        return StreamingResponse(
            stream_answer(
                result.answer,
                chunk_size=current.config.stream_chunk_size,
                delay_seconds=current.config.stream_delay_seconds,
            ),
            media_type="text/plain; charset=utf-8",
            headers={"Cache-Control": "no-cache", "X-Trace-Id": result.trace_id or ""},
        )

    @app.get("/traces")
    def traces(
        request: Request, limit: int = 20, conversation_id: str | None = None
    ) -> dict[str, Any]:
        trace_store = _services(request).trace_store
        records = [
            asdict(record)
            for record in trace_store.list_recent(limit=limit, conversation_id=conversation_id)
        ]
        return {"items": records}

    @app.get("/traces/{trace_id}")
    def trace_detail(request: Request, trace_id: str) -> dict[str, Any]:
        try:
            record = _services(request).trace_store.get(trace_id)
        except KeyError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        return asdict(record)

    @app.get("/metrics")
    def metrics(request: Request) -> dict[str, Any]:
        return _services(request).trace_store.summary()

    return app


app = create_app()


def main() -> None:
    import uvicorn

    uvicorn.run("legal_agent.api.main:app", host="0.0.0.0", port=8000)


if __name__ == "__main__":
    main()
