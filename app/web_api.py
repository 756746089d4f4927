"""FastAPI application exposing the classroom assistant over HTTP."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Dict, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from app.main import Assistant, build_assistant
from core.errors import AuthenticationError

logger = logging.getLogger(__name__)

# Failed turns are reported with the status that best matches their cause.
_STATUS_BY_ERROR_KIND = {
    "unauthorized": 403,
    "permission": 403,
    "precondition": 409,
    "not_found": 404,
    "transient": 503,
}
_DEFAULT_FAILURE_STATUS = 502


class MessageRequest(BaseModel):
    message: Optional[str] = None
    conversationId: Optional[str] = None


def status_for(response: Dict[str, Any]) -> int:
    if response.get("type") != "failed":
        return 200
    return _STATUS_BY_ERROR_KIND.get(str(response.get("errorKind")), _DEFAULT_FAILURE_STATUS)


def _require_token(request: Request) -> str:
    token = (request.headers.get("Authorization") or "").strip()
    if not token:
        raise HTTPException(status_code=401, detail="Authorization header is required.")
    authenticator = request.app.state.assistant.authenticator
    if authenticator.enabled:
        try:
            authenticator.verify(token)
        except AuthenticationError as exc:
            raise HTTPException(status_code=401, detail=str(exc)) from exc
    return token


def create_app(assistant: Optional[Assistant] = None) -> FastAPI:
    """WHAT: instantiate FastAPI around a shared ``Assistant``.

    WHY: the HTTP surface must run the same wiring as the CLI, while tests
    inject their own assistant with a fake backend.
    HOW: accept an override, start the eviction sweeper in the lifespan hook,
    and register the message and conversation routes.
    """
    runtime = assistant or build_assistant()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        runtime.sweeper.start()
        try:
            yield
        finally:
            await runtime.close()

    app = FastAPI(title="Classroom Assistant API", version="1.0.0", lifespan=lifespan)
    app.state.assistant = runtime

    @app.get("/api/health")
    async def health_check() -> Dict[str, Any]:
        """Inexpensive uptime probe that never touches the model or backend."""
        return {
            "status": "ok",
            "timestamp": datetime.now(tz=timezone.utc).isoformat(),
        }

    @app.post("/api/ai-agent/message")
    async def post_message(request: Request, payload: MessageRequest) -> JSONResponse:
        """WHAT: run one user message through the dialogue service.

        WHY: the web client keeps only the conversation id; everything else
        lives in the conversation store.
        HOW: validate the message and the bearer header, call ``handle_turn``,
        and map failed outcomes onto an HTTP status while keeping the body.
        """
        message = (payload.message or "").strip()
        if not message:
            raise HTTPException(status_code=400, detail="Message is required.")
        token = _require_token(request)
        result = await app.state.assistant.dialogue.handle_turn(payload.conversationId, message, token)
        body = result.to_dict()
        return JSONResponse(status_code=status_for(body["response"]), content=body)

    @app.get("/api/ai-agent/conversations/{conversation_id}")
    async def get_conversation(request: Request, conversation_id: str) -> Dict[str, Any]:
        _require_token(request)
        conversation = await app.state.assistant.store.find(conversation_id)
        if conversation is None:
            raise HTTPException(status_code=404, detail="Conversation not found.")
        return {
            "conversationId": conversation.id,
            "messages": [message.to_dict() for message in conversation.messages],
            "context": conversation.context.to_dict(),
        }

    @app.delete("/api/ai-agent/conversations/{conversation_id}")
    async def delete_conversation(request: Request, conversation_id: str) -> Dict[str, Any]:
        _require_token(request)
        store = app.state.assistant.store
        async with store.hold(conversation_id):
            removed = await store.delete(conversation_id)
        if not removed:
            raise HTTPException(status_code=404, detail="Conversation not found.")
        logger.info("Conversation %s cleared by caller", conversation_id)
        return {"conversationId": conversation_id, "status": "deleted"}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    from app.config import get_web_host, get_web_port

    uvicorn.run(
        "app.web_api:app",
        host=get_web_host(),
        port=get_web_port(),
        reload=False,
    )
