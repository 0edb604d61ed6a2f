"""
Ollama runtime wrapper: installed model listing and generation
"""

import re
import subprocess
from typing import List

import requests

from config import GENERATION_TIMEOUT, LIST_TIMEOUT, OLLAMA_API_BASE, OLLAMA_BIN, TEMPERATURE
from models import ModelInfo
from prompts import format_prompt


class OllamaError(Exception):
    """Base class for failures talking to the Ollama runtime"""


class RuntimeUnavailable(OllamaError):
    """`ollama list` could not be run or exited non-zero"""


class GenerationError(OllamaError):
    """The runtime rejected or failed a generation request"""


class GenerationTimeout(OllamaError):
    """A generation request did not finish within its timeout"""


def parse_model_listing(output: str) -> List[ModelInfo]:
    """Parse the table printed by `ollama list`.

    The header row gives column offsets (NAME, ID, SIZE, MODIFIED). Sizes and
    modification times contain spaces ("4.9 GB", "2 weeks ago"), so rows are
    sliced at those offsets. Without a recognizable header each row is read as
    whitespace separated `name size modified...`.
    """
    lines = [line for line in output.splitlines() if line.strip()]
    if not lines:
        return []

    header, rows = lines[0], lines[1:]
    columns = {match.group(0).upper(): match.start() for match in re.finditer(r"\S+", header)}
    by_offset = {"NAME", "SIZE", "MODIFIED"} <= columns.keys()
    starts = sorted(columns.values())

    models = []
    for row in rows:
        if by_offset:
            name = _column(row, columns["NAME"], starts)
            if not name:
                continue
            models.append(ModelInfo(
                name=name.split()[0],
                size=_column(row, columns["SIZE"], starts),
                modified=_column(row, columns["MODIFIED"], starts),
            ))
        else:
            fields = row.split()
            if len(fields) >= 3:
                models.append(ModelInfo(name=fields[0], size=fields[1], modified=" ".join(fields[2:])))
    return models


def _column(row: str, start: int, starts: List[int]) -> str:
    following = [s for s in starts if s > start]
    end = following[0] if following else None
    return row[start:end].strip()


def model_matches(installed: str, requested: str) -> bool:
    """A bare name matches every tag of that name; a tagged name matches exactly"""
    return installed == requested or installed.startswith(requested + ":")


class OllamaAPI:
    """Wrapper class for Ollama runtime operations"""

    @staticmethod
    def list_installed() -> List[ModelInfo]:
        """Get the installed models from `ollama list`"""
        try:
            result = subprocess.run(
                [OLLAMA_BIN, "list"],
                capture_output=True,
                text=True,
                timeout=LIST_TIMEOUT,
            )
        except FileNotFoundError as e:
            raise RuntimeUnavailable(f"{OLLAMA_BIN} not found: {e}") from e
        except subprocess.TimeoutExpired as e:
            raise RuntimeUnavailable(f"{OLLAMA_BIN} list timed out after {LIST_TIMEOUT}s") from e
        except OSError as e:
            raise RuntimeUnavailable(f"Could not run {OLLAMA_BIN} list: {e}") from e

        if result.returncode != 0:
            detail = (result.stderr or result.stdout or "").strip()
            raise RuntimeUnavailable(f"{OLLAMA_BIN} list exited with status {result.returncode}: {detail}")

        return parse_model_listing(result.stdout)

    @staticmethod
    def is_installed(model_name: str) -> bool:
        """Check whether a model is installed; False when the runtime cannot be reached"""
        try:
            installed = OllamaAPI.list_installed()
        except RuntimeUnavailable as e:
            # Absent and unreachable look the same to callers here
            print(f"Ollama: Error checking installed models: {e}")
            return False
        return any(model_matches(model.name, model_name) for model in installed)

    @staticmethod
    def generate(message: str, model_name: str, timeout: float = GENERATION_TIMEOUT,
                 temperature: float = TEMPERATURE) -> str:
        """Run a single, non-streamed generation and return the full text.

        `timeout` is the requests connect/read timeout. With stream=false Ollama
        sends nothing until the text is complete, so it bounds the whole call;
        ModelSessionCoordinator.chat adds a wall-clock deadline on top.
        """
        payload = {
            "model": model_name,
            "prompt": format_prompt(message),
            "stream": False,
            "options": {"temperature": temperature},
        }
        try:
            response = requests.post(f"{OLLAMA_API_BASE}/api/generate", json=payload, timeout=timeout)
        except requests.exceptions.Timeout as e:
            raise GenerationTimeout(f"Generation with {model_name} timed out after {timeout:g}s") from e
        except requests.exceptions.RequestException as e:
            raise GenerationError(f"Error calling Ollama: {e}") from e

        try:
            data = response.json()
        except ValueError:
            data = {}

        if not response.ok:
            detail = data.get("error") if isinstance(data, dict) else None
            raise GenerationError(f"Ollama responded with status {response.status_code}: {detail or response.text}")
        if not isinstance(data, dict) or "response" not in data:
            raise GenerationError("Ollama returned an unexpected body")
        if data.get("error"):
            raise GenerationError(f"Ollama error: {data['error']}")

        return data["response"]

    @staticmethod
    def test_connection() -> tuple[bool, str]:
        """Test that the Ollama runtime answers `ollama list`"""
        try:
            models = OllamaAPI.list_installed()
        except RuntimeUnavailable as e:
            return False, f"❌ Ollama service is not available: {e}"
        return True, f"✅ Ollama is running! Found {len(models)} installed models"
