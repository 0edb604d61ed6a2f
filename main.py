#!/usr/bin/env python3
"""
Ollama Chat Relay - Main Entry Point

Relays chat requests from HTTP and WebSocket clients to a local Ollama
runtime:
- Per-request model selection with automatic pull of missing models
- Installed model listing and status
- Health check against the Ollama runtime
"""

from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request, WebSocket
from fastapi.exceptions import RequestValidationError
from fastapi.responses import FileResponse, JSONResponse
from fastapi.staticfiles import StaticFiles

from config import HOST, PORT, STATIC_DIR
from coordinator import coordinator
from models import ChatRequest, ChatResult, PullRequest
from ollama_api import OllamaAPI
from routes import (chat, chat_websocket, get_installed_models, get_model_status, get_models, get_root,
                    health_check, pull_model)


# Application lifespan management
@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager"""
    # Startup
    print("🚀 Starting Ollama Chat Relay...")

    connected, status_msg = OllamaAPI.test_connection()
    print(f"   {status_msg}")
    print(f"   🤖 Default model: {coordinator.session.current}")
    print(f"   🌐 Web interface: http://{HOST}:{PORT}")

    yield

    # Shutdown
    print("\n🛑 Shutting down Ollama Chat Relay...")
    coordinator.installer.shutdown()
    print("   ✅ Shutdown complete")


# Create FastAPI application
app = FastAPI(
    title="Ollama Chat Relay",
    description="Chat relay in front of a local Ollama runtime",
    version="1.0.0",
    lifespan=lifespan
)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    """Malformed request bodies are a 400, not FastAPI's default 422"""
    if request.url.path == "/api/models/pull":
        return JSONResponse(content={"status": "error", "message": "Invalid request format"}, status_code=400)
    problems = "; ".join(
        f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}" for error in exc.errors()
    )
    result = ChatResult.failed("bad_request", f"Error parsing request: {problems}")
    return JSONResponse(content=result.model_dump(exclude_none=True), status_code=400)


# Main web interface
@app.get("/")
async def index():
    """Serve the chat page"""
    index_path = Path(STATIC_DIR) / "index.html"
    if not index_path.is_file():
        return JSONResponse(content={"error": "index.html not found"}, status_code=404)
    return FileResponse(index_path)


# API Routes
@app.get("/api")
async def api_root():
    return await get_root()

@app.get("/api/models")
async def api_get_models():
    return await get_models()

@app.get("/api/models/installed-models")
async def api_get_installed_models():
    return await get_installed_models()

@app.get("/api/models/status")
async def api_get_model_status():
    return await get_model_status()

@app.post("/api/models/pull")
async def api_pull_model(pull_request: PullRequest):
    return await pull_model(pull_request)

@app.post("/api/chat")
async def api_chat(chat_msg: ChatRequest):
    return await chat(chat_msg)

@app.websocket("/api/chat/ws")
async def api_chat_ws(websocket: WebSocket):
    await chat_websocket(websocket)

@app.get("/api/health")
async def api_health_check():
    return await health_check()


if Path(STATIC_DIR).is_dir():
    app.mount("/static", StaticFiles(directory=STATIC_DIR), name="static")


if __name__ == "__main__":
    import uvicorn

    print("Starting Ollama Chat Relay...")
    print(f"Navigate to http://{HOST}:{PORT} to access the web interface")

    uvicorn.run(app, host=HOST, port=PORT)
