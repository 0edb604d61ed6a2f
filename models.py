"""
Data models and shared state for Ollama Chat Relay
"""

import threading
from typing import Any, List, Literal, Optional

from pydantic import BaseModel, Field, model_validator

from config import AVAILABLE_MODELS, DEFAULT_MODEL


class ChatRequest(BaseModel):
    """Chat message request"""
    message: str
    model_name: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def accept_legacy_model_field(cls, data: Any) -> Any:
        # Older clients send {"message", "model"}
        if isinstance(data, dict) and not data.get("model_name") and data.get("model"):
            data = {**data, "model_name": data["model"]}
        return data


class PullRequest(BaseModel):
    """Model pull request"""
    model_name: str = Field(min_length=1)


class ModelInfo(BaseModel):
    """One row of the runtime's installed model listing"""
    name: str
    size: str = ""
    modified: str = ""


class ModelStatus(BaseModel):
    name: str
    installed: bool


class ErrorDetail(BaseModel):
    kind: Literal["bad_request", "install_failed", "timeout", "generation_failed"]
    detail: str


class ChatResult(BaseModel):
    """Outcome of one chat request, either ready text or a typed error"""
    status: Literal["ready", "error"]
    response: Optional[str] = None
    model: Optional[str] = None
    pulled: bool = False
    error: Optional[ErrorDetail] = None

    @classmethod
    def ready(cls, text: str, model: str, pulled: bool = False) -> "ChatResult":
        return cls(status="ready", response=text, model=model, pulled=pulled)

    @classmethod
    def failed(cls, kind: str, detail: str, model: str = None, pulled: bool = False) -> "ChatResult":
        return cls(status="error", model=model, pulled=pulled,
                   error=ErrorDetail(kind=kind, detail=detail))


class StatusFrame(BaseModel):
    """Progress notification sent ahead of a result on the streaming channel"""
    type: Literal["status"] = "status"
    status: Literal["installing", "installed", "install_failed"]
    model: str
    message: str


class InstallResult(BaseModel):
    model: str
    ok: bool
    log: str


class SessionState:
    """Process-wide default model, shared by every request"""
    def __init__(self, model: str):
        self._lock = threading.Lock()
        self._current = model

    @property
    def current(self) -> str:
        with self._lock:
            return self._current

    def is_current(self, model_name: str) -> bool:
        with self._lock:
            return self._current == model_name

    def switch(self, model_name: str) -> str:
        """Make model_name current and return the model it replaced"""
        with self._lock:
            previous = self._current
            self._current = model_name
            return previous


class ModelCatalog:
    """Ordered, append-only list of models the service offers"""
    def __init__(self, models: List[str]):
        self._lock = threading.Lock()
        self._models: List[str] = []
        for name in models:
            if name not in self._models:
                self._models.append(name)

    def add(self, model_name: str) -> bool:
        with self._lock:
            if model_name in self._models:
                return False
            self._models.append(model_name)
            return True

    def models(self) -> List[str]:
        with self._lock:
            return list(self._models)

    def __contains__(self, model_name: str) -> bool:
        with self._lock:
            return model_name in self._models


# Global state instances
session_state = SessionState(DEFAULT_MODEL)
model_catalog = ModelCatalog(AVAILABLE_MODELS)
