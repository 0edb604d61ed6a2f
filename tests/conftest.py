"""Shared fakes for the Ollama runtime and the installer."""

import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from coordinator import ModelSessionCoordinator
from models import InstallResult, ModelCatalog, ModelInfo, SessionState
from ollama_api import RuntimeUnavailable, model_matches


class FakeOllama:
    """Stands in for OllamaAPI; records every probe and generation"""

    def __init__(self, installed=(), reply="ok", available=True):
        self.installed = list(installed)
        self.reply = reply
        self.available = available
        self.probes = []
        self.generations = []
        self.lock = threading.Lock()

    def list_installed(self):
        if not self.available:
            raise RuntimeUnavailable("ollama list exited with status 1")
        return [ModelInfo(name=name, size="1 GB", modified="now") for name in self.installed]

    def is_installed(self, model_name):
        with self.lock:
            self.probes.append(model_name)
        if not self.available:
            return False
        return any(model_matches(name, model_name) for name in self.installed)

    def test_connection(self):
        if not self.available:
            return False, "❌ Ollama service is not available: ollama list exited with status 1"
        return True, f"✅ Ollama is running! Found {len(self.installed)} installed models"

    def generate(self, message, model_name):
        with self.lock:
            self.generations.append((message, model_name))
        if isinstance(self.reply, Exception):
            raise self.reply
        return self.reply


class FakeInstaller:
    """Stands in for ModelInstaller; succeeds unless told otherwise"""

    def __init__(self, catalog, api=None, ok=True, log="pulled"):
        self.catalog = catalog
        self.api = api
        self.ok = ok
        self.log = log
        self.calls = []
        self.executor = ThreadPoolExecutor(max_workers=2)

    def install(self, model_name):
        self.calls.append(model_name)
        if not self.ok:
            return InstallResult(model=model_name, ok=False, log=self.log)
        if self.api is not None:
            self.api.installed.append(model_name)
        self.catalog.add(model_name)
        return InstallResult(model=model_name, ok=True, log=self.log)

    def shutdown(self):
        self.executor.shutdown(wait=False)


@pytest.fixture
def catalog():
    return ModelCatalog(["llama3.1:8b", "mistral:7b"])


@pytest.fixture
def session():
    return SessionState("llama3.1:8b")


@pytest.fixture
def ollama():
    return FakeOllama(installed=["llama3.1:8b", "mistral:7b"])


@pytest.fixture
def installer(catalog, ollama):
    fake = FakeInstaller(catalog, api=ollama)
    yield fake
    fake.shutdown()


@pytest.fixture
def coordinator(session, catalog, ollama, installer):
    return ModelSessionCoordinator(session, catalog, api=ollama, installer=installer)


@pytest.fixture
def failing_installer(catalog):
    fake = FakeInstaller(catalog, ok=False, log="pull script failed: exit 1\nollama pull failed: no space left")
    yield fake
    fake.shutdown()
