"""
FastAPI route handlers for Ollama Chat Relay
"""

import asyncio
import json

from fastapi import WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from coordinator import coordinator
from models import ChatRequest, ChatResult, PullRequest, StatusFrame
from ollama_api import OllamaAPI, RuntimeUnavailable

ERROR_STATUS_CODES = {
    "bad_request": 400,
    "install_failed": 500,
    "generation_failed": 502,
    "timeout": 504,
}


def result_response(result: ChatResult) -> JSONResponse:
    status_code = ERROR_STATUS_CODES[result.error.kind] if result.error else 200
    return JSONResponse(content=result.model_dump(exclude_none=True), status_code=status_code)


def unavailable_response(e: Exception) -> JSONResponse:
    return JSONResponse(
        content={"status": "error", "message": "Ollama service is not available", "error": str(e)},
        status_code=503,
    )


async def get_root():
    """API root"""
    return JSONResponse(content={"message": "Ollama Chat Bot API is running"})


async def get_models():
    """Models the service offers and the current session model"""
    return JSONResponse(content={
        "available_models": coordinator.catalog.models(),
        "current_model": coordinator.session.current,
    })


async def get_installed_models():
    """Models actually installed in the Ollama runtime"""
    try:
        models = await asyncio.to_thread(OllamaAPI.list_installed)
    except RuntimeUnavailable as e:
        print(f"API: Error getting models: {e}")
        return unavailable_response(e)
    return JSONResponse(content=[model.model_dump() for model in models])


async def get_model_status():
    """Installed flag for each available model"""
    try:
        statuses, current = await asyncio.to_thread(coordinator.model_statuses)
    except RuntimeUnavailable as e:
        print(f"API: Error checking model status: {e}")
        return unavailable_response(e)
    return JSONResponse(content={
        "models": [status.model_dump() for status in statuses],
        "current_model": current,
    })


async def health_check():
    """Healthy only when the Ollama runtime answers"""
    connected, status_msg = await asyncio.to_thread(OllamaAPI.test_connection)
    if not connected:
        return JSONResponse(
            content={"status": "error", "message": "Ollama service is not available", "error": status_msg},
            status_code=503,
        )
    return JSONResponse(content={"status": "ok", "message": "Server is running and Ollama is available"})


async def chat(chat_msg: ChatRequest):
    """Answer one chat message, pulling the requested model first if needed"""
    result = await coordinator.chat(chat_msg.message, chat_msg.model_name)
    return result_response(result)


async def pull_model(pull_request: PullRequest):
    """Pull a model into the runtime and add it to the available models"""
    result = await coordinator.pull(pull_request.model_name)
    if not result.ok:
        return JSONResponse(
            content={
                "status": "error",
                "message": f"Failed to pull model {result.model}",
                "details": result.log,
            },
            status_code=500,
        )
    return JSONResponse(content={
        "status": "success",
        "message": f"Successfully pulled model {result.model}",
        "details": result.log,
    })


def parse_chat_frame(message: dict) -> ChatRequest:
    """Read a ChatRequest from a text or binary WebSocket frame"""
    raw = message.get("text")
    if raw is None:
        raw = (message.get("bytes") or b"").decode("utf-8")
    return ChatRequest.model_validate(json.loads(raw))


async def chat_websocket(websocket: WebSocket):
    """Chat over a WebSocket: status frames, then one result frame per message"""
    await websocket.accept()
    print("WS: Connection established")

    async def notify(frame: StatusFrame):
        await websocket.send_json(frame.model_dump())

    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(message.get("code", 1000))
            print(f"WS: Received message: {message.get('text') or message.get('bytes')!r}")

            try:
                chat_msg = parse_chat_frame(message)
            except (ValueError, ValidationError) as e:
                print(f"WS: Error parsing message: {e}")
                result = ChatResult.failed("bad_request", f"Error parsing request: {e}")
            else:
                result = await coordinator.chat(chat_msg.message, chat_msg.model_name, notify=notify)

            await websocket.send_json({"type": "result", **result.model_dump(exclude_none=True)})
    except WebSocketDisconnect:
        print("WS: Connection closed")
