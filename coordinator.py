"""
Model session coordination: install-if-missing, switch, then generate
"""

import asyncio
import threading
from contextlib import contextmanager
from typing import Awaitable, Callable, Dict, Iterator, List, Optional, Tuple

from pydantic import BaseModel

from config import GENERATION_TIMEOUT
from models import (ChatResult, InstallResult, ModelCatalog, ModelStatus, SessionState, StatusFrame,
                    model_catalog, session_state)
from installer import ModelInstaller
from ollama_api import GenerationError, GenerationTimeout, OllamaAPI, model_matches

Notify = Callable[[StatusFrame], Awaitable[None]]


class EnsureResult(BaseModel):
    ok: bool
    model: str
    pulled: bool = False
    detail: str = ""


class ModelSessionCoordinator:
    """Decides whether a requested model needs installing and which model a request runs on.

    The session model is only a default. Each request resolves its own model in
    ensure_model() and passes it straight to generation, so a switch made by a
    concurrent request cannot change which model an in-flight request uses.
    Locks are held for the session read/write and, per model, around the
    install job; never across a generation call.
    """

    def __init__(self, session: SessionState, catalog: ModelCatalog, api=OllamaAPI,
                 installer: Optional[ModelInstaller] = None, generation_timeout: float = GENERATION_TIMEOUT):
        self.session = session
        self.catalog = catalog
        self.api = api
        self.installer = installer or ModelInstaller(catalog)
        self.generation_timeout = generation_timeout
        # model name -> [lock, number of jobs holding or waiting on it]
        self._install_locks: Dict[str, list] = {}
        self._install_locks_guard = threading.Lock()

    async def ensure_model(self, requested: Optional[str], notify: Optional[Notify] = None) -> EnsureResult:
        """Make sure `requested` is installed and current before generation"""
        if not requested:
            return EnsureResult(ok=True, model=self.session.current)
        if self.session.is_current(requested):
            return EnsureResult(ok=True, model=requested)

        pulled = False
        installed = await asyncio.to_thread(self.api.is_installed, requested)
        if not installed:
            print(f"Coordinator: Model {requested} not installed, attempting to pull...")
            await self._notify(notify, "installing", requested,
                               f"Model {requested} is not installed. Pulling it now, this may take a few minutes...")

            result = await self._run_install(requested)
            if not result.ok:
                await self._notify(notify, "install_failed", requested,
                                   f"Failed to pull model {requested}: {result.log}")
                return EnsureResult(ok=False, model=requested, detail=result.log)

            pulled = True

        previous = self.session.switch(requested)
        print(f"Coordinator: Switched to model: {requested} (was {previous})")
        if pulled:
            await self._notify(notify, "installed", requested,
                               f"Successfully pulled model {requested}. Ready to use!")
        return EnsureResult(ok=True, model=requested, pulled=pulled)

    async def chat(self, message: str, model_name: Optional[str] = None,
                   notify: Optional[Notify] = None) -> ChatResult:
        """Ensure the model, then generate a reply on exactly that model"""
        ensured = await self.ensure_model(model_name, notify)
        if not ensured.ok:
            return ChatResult.failed("install_failed", f"Failed to pull model {ensured.model}: {ensured.detail}",
                                     model=ensured.model)

        print(f"Coordinator: Processing query with model: {ensured.model}")
        try:
            text = await asyncio.wait_for(asyncio.to_thread(self.api.generate, message, ensured.model),
                                          timeout=self.generation_timeout)
        except (GenerationTimeout, asyncio.TimeoutError) as e:
            detail = str(e) or f"Generation with {ensured.model} timed out after {self.generation_timeout:g}s"
            print(f"Coordinator: {detail}")
            return ChatResult.failed("timeout", detail, model=ensured.model, pulled=ensured.pulled)
        except GenerationError as e:
            print(f"Coordinator: Error generating response: {e}")
            return ChatResult.failed("generation_failed", str(e), model=ensured.model, pulled=ensured.pulled)

        print(f"Coordinator: Got response (length: {len(text)})")
        return ChatResult.ready(text, model=ensured.model, pulled=ensured.pulled)

    async def pull(self, model_name: str) -> InstallResult:
        """Install a model without touching the session model"""
        return await self._run_install(model_name)

    def model_statuses(self) -> Tuple[List[ModelStatus], str]:
        """Installed flag for every catalog entry from a single listing.

        Raises RuntimeUnavailable when the listing cannot be fetched.
        """
        installed = [model.name for model in self.api.list_installed()]
        statuses = [
            ModelStatus(name=name, installed=any(model_matches(i, name) for i in installed))
            for name in self.catalog.models()
        ]
        return statuses, self.session.current

    async def _run_install(self, model_name: str) -> InstallResult:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self.installer.executor, self._install_job, model_name)

    def _install_job(self, model_name: str) -> InstallResult:
        # Runs on the installer's worker. Requests for the same model queue here
        # and the ones behind the first see it already installed.
        with self._install_lock(model_name):
            if self.api.is_installed(model_name):
                self.catalog.add(model_name)
                return InstallResult(model=model_name, ok=True, log=f"Model {model_name} is already installed")
            return self.installer.install(model_name)

    @contextmanager
    def _install_lock(self, model_name: str) -> Iterator[None]:
        with self._install_locks_guard:
            entry = self._install_locks.setdefault(model_name, [threading.Lock(), 0])
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._install_locks_guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._install_locks[model_name]

    @staticmethod
    async def _notify(notify: Optional[Notify], status: str, model_name: str, message: str):
        if notify is not None:
            await notify(StatusFrame(status=status, model=model_name, message=message))


# Global coordinator instance
coordinator = ModelSessionCoordinator(session_state, model_catalog)
