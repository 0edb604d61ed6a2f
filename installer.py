"""
Model installation through the pull script, with `ollama pull` as fallback
"""

import subprocess
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from typing import List, Tuple

from config import INSTALL_SCRIPT, INSTALL_TIMEOUT, INSTALL_WORKERS, OLLAMA_BIN
from models import InstallResult, ModelCatalog

POLL_INTERVAL = 0.5


class ModelInstaller:
    """Runs installs on its own worker pool so a slow pull never blocks a request handler"""

    def __init__(self, catalog: ModelCatalog, script: str = INSTALL_SCRIPT,
                 timeout: float = INSTALL_TIMEOUT, workers: int = INSTALL_WORKERS):
        self.catalog = catalog
        self.script = script
        self.timeout = timeout
        self.executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="model-install")
        self.cancel_event = threading.Event()

    def install(self, model_name: str) -> InstallResult:
        """Install a model, trying the hardware-aware script before a plain pull"""
        print(f"Installer: Attempting to pull model: {model_name}")

        ok, output = self._run_command(["bash", self.script, model_name])
        if not ok:
            print(f"Installer: Error pulling model {model_name}\nOutput: {output}")
            print("Installer: Falling back to direct ollama pull...")
            fallback_ok, fallback_output = self._run_command([OLLAMA_BIN, "pull", model_name])
            if not fallback_ok:
                print(f"Installer: Fallback also failed for model {model_name}\nOutput: {fallback_output}")
                return InstallResult(
                    model=model_name,
                    ok=False,
                    log=f"pull script failed: {output.strip()}\nollama pull failed: {fallback_output.strip()}",
                )
            output = fallback_output

        print(f"Installer: Successfully pulled model {model_name}")
        if self.catalog.add(model_name):
            print(f"Installer: Added {model_name} to available models")
        return InstallResult(model=model_name, ok=True, log=output)

    def _run_command(self, cmd: List[str]) -> Tuple[bool, str]:
        """Run cmd to completion, killing it on timeout or cancellation"""
        try:
            process = subprocess.Popen(cmd, stdout=subprocess.PIPE, stderr=subprocess.STDOUT, text=True)
        except OSError as e:
            return False, f"Could not start {' '.join(cmd)}: {e}"

        deadline = time.monotonic() + self.timeout
        while True:
            try:
                output, _ = process.communicate(timeout=POLL_INTERVAL)
                break
            except subprocess.TimeoutExpired:
                if self.cancel_event.is_set():
                    reason = "was cancelled"
                elif time.monotonic() >= deadline:
                    reason = f"timed out after {self.timeout:g}s"
                else:
                    continue
                process.kill()
                output, _ = process.communicate()
                return False, f"{output or ''}{' '.join(cmd)} {reason}"

        if process.returncode != 0:
            return False, f"{output or ''}{' '.join(cmd)} exited with status {process.returncode}"
        return True, output or ""

    def shutdown(self):
        """Cancel running installs and stop the worker pool"""
        self.cancel_event.set()
        self.executor.shutdown(wait=False, cancel_futures=True)
