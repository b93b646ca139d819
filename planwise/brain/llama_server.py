"""
llama.cpp server backend for Planwise.

Runs the llama.cpp HTTP server as a local subprocess bound to 127.0.0.1:
- load() starts a server for the model and waits for /health
- run() streams the native /completion endpoint, polling a stop check
- unload() terminates the process (kill after a grace period)

The handle is the server process id.
"""
import json
import shutil
import subprocess
import sys
import time
import urllib.error
import urllib.request
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, IO, Iterator, List, Optional

from planwise.brain.inference import NO_HANDLE, StopCheck
from planwise.core.config import Config
from planwise.core.errors import GenerationCancelled, GenerationFailure, InvalidHandle
from planwise.core.logger import get_logger

# CREATE_NO_WINDOW, keeps a console from popping up on Windows
_CREATE_NO_WINDOW = 0x08000000


def find_server_binary(binary_path: str) -> Optional[str]:
    """
    Resolve the llama-server executable.

    Tries the configured path first, then llama-server on PATH.
    """
    candidate = Path(binary_path)
    if candidate.is_file():
        return str(candidate.resolve())
    on_path = shutil.which("llama-server")
    return on_path


@dataclass
class _ServerProcess:
    process: subprocess.Popen
    base_url: str
    model_path: str
    log_file: Optional[IO[str]] = None


class LlamaServerBackend:
    """
    InferenceBackend that drives a llama-server subprocess over HTTP.

    Only loopback addresses are used; nothing here listens on the network.
    """

    def __init__(
        self,
        binary_path: str,
        port: Optional[int] = None,
        ctx_size: Optional[int] = None,
        n_threads: Optional[int] = None,
        startup_timeout: Optional[float] = None,
        request_timeout: Optional[float] = None,
        log_dir: Optional[str] = None,
    ):
        self.logger = get_logger()
        self.binary_path = binary_path
        self.port = port or Config.LLAMA_SERVER_PORT
        self.ctx_size = ctx_size or Config.N_CTX
        self.n_threads = n_threads or Config.N_THREADS
        self.startup_timeout = startup_timeout or Config.LLAMA_SERVER_STARTUP_TIMEOUT_SEC
        self.request_timeout = request_timeout or max(Config.GENERATION_TIMEOUT_SEC, 5.0)
        self.log_dir = Path(log_dir or Config.LLAMA_SERVER_LOG_DIR)
        self._servers: Dict[int, _ServerProcess] = {}
        self.opener = urllib.request.build_opener(
            urllib.request.HTTPHandler(debuglevel=0),
        )

    # ------------------------------------------------------------------
    # load / unload
    # ------------------------------------------------------------------

    def _build_command(self, model_path: str) -> List[str]:
        cmd = [
            self.binary_path,
            "--model", str(Path(model_path).resolve()),
            "--port", str(self.port),
            "--host", "127.0.0.1",
            "--ctx-size", str(self.ctx_size),
        ]
        if self.n_threads > 0:
            cmd.extend(["--threads", str(self.n_threads)])
        return cmd

    def _open_log(self, cmd: List[str]) -> Optional[IO[str]]:
        try:
            self.log_dir.mkdir(parents=True, exist_ok=True)
            handle = open(self.log_dir / "llama_server.log", "a", encoding="utf-8", buffering=1)
        except OSError as e:
            self.logger.warning(f"[LLAMACPP] Could not open server log: {e}")
            return None
        handle.write(f"\n{'=' * 60}\n")
        handle.write(f"[{time.strftime('%Y-%m-%d %H:%M:%S')}] Starting llama.cpp server\n")
        handle.write(f"Command: {' '.join(cmd)}\n")
        handle.write(f"{'=' * 60}\n")
        return handle

    def load(self, model_path: str) -> int:
        """
        Start a server for model_path and wait until it answers /health.

        Returns:
            Server pid, or 0 if the model is missing or the server never came up
        """
        if not Path(model_path).is_file():
            self.logger.error(f"[LLAMACPP] Model not found at {model_path}")
            return NO_HANDLE

        cmd = self._build_command(model_path)
        log_file = self._open_log(cmd)
        self.logger.info(f"[LLAMACPP] Starting server: {' '.join(cmd[:3])}...")

        process = subprocess.Popen(
            cmd,
            stdout=log_file or subprocess.DEVNULL,
            stderr=log_file or subprocess.DEVNULL,
            stdin=subprocess.DEVNULL,
            creationflags=_CREATE_NO_WINDOW if sys.platform == "win32" else 0,
        )
        server = _ServerProcess(
            process=process,
            base_url=f"http://127.0.0.1:{self.port}",
            model_path=model_path,
            log_file=log_file,
        )

        if not self._wait_until_ready(server):
            self._stop(server)
            return NO_HANDLE

        self._servers[process.pid] = server
        self.logger.info(f"[LLAMACPP] Server ready at {server.base_url} (PID: {process.pid})")
        return process.pid

    def _wait_until_ready(self, server: _ServerProcess, poll_interval: float = 0.5) -> bool:
        deadline = time.monotonic() + self.startup_timeout
        while time.monotonic() < deadline:
            if server.process.poll() is not None:
                self.logger.error(f"[LLAMACPP] Server exited with code {server.process.returncode}")
                return False
            if self.healthcheck(server.base_url):
                return True
            time.sleep(poll_interval)
        self.logger.error(f"[LLAMACPP] Server not ready within {self.startup_timeout:.0f}s")
        return False

    def healthcheck(self, base_url: str, timeout: float = 2.0) -> bool:
        """True if the server answers /health or /v1/models with HTTP 200"""
        for endpoint in (f"{base_url}/health", f"{base_url}/v1/models"):
            try:
                req = urllib.request.Request(endpoint, method="GET")
                with self.opener.open(req, timeout=timeout) as response:
                    if response.status == 200:
                        return True
            except (urllib.error.URLError, OSError):
                continue
        return False

    def _stop(self, server: _ServerProcess) -> None:
        try:
            server.process.terminate()
            try:
                server.process.wait(timeout=5.0)
            except subprocess.TimeoutExpired:
                self.logger.warning("[LLAMACPP] Server not responding, forcing kill")
                server.process.kill()
                server.process.wait(timeout=2.0)
        finally:
            if server.log_file is not None:
                server.log_file.write(f"\n[{time.strftime('%Y-%m-%d %H:%M:%S')}] Server stopped\n")
                server.log_file.close()
                server.log_file = None

    def unload(self, handle: int) -> None:
        if handle == NO_HANDLE:
            return
        server = self._servers.pop(handle, None)
        if server is None:
            return
        self.logger.info(f"[LLAMACPP] Stopping server (PID: {handle})")
        self._stop(server)

    # ------------------------------------------------------------------
    # generation
    # ------------------------------------------------------------------

    def _stream_lines(self, server: _ServerProcess, payload: dict) -> Iterator[dict]:
        req = urllib.request.Request(
            f"{server.base_url}/completion",
            data=json.dumps(payload).encode("utf-8"),
            headers={"Content-Type": "application/json"},
            method="POST",
        )
        with self.opener.open(req, timeout=self.request_timeout) as response:
            for raw in response:
                line = raw.decode("utf-8").strip()
                if not line:
                    continue
                # SSE framing
                if line.startswith("data: "):
                    line = line[6:]
                if line == "[DONE]":
                    break
                try:
                    yield json.loads(line)
                except json.JSONDecodeError:
                    continue

    def run(self, handle: int, prompt: str, max_tokens: int, should_stop: StopCheck) -> str:
        server = self._servers.get(handle)
        if server is None:
            raise InvalidHandle(f"No llama-server running for handle {handle}")
        if server.process.poll() is not None:
            raise GenerationFailure(f"llama-server exited with code {server.process.returncode}")

        payload = {
            "prompt": prompt,
            "stream": True,
            "temperature": Config.TEMPERATURE,
            "top_p": Config.TOP_P,
            "n_predict": max_tokens,
        }

        start_time = time.time()
        parts: List[str] = []
        try:
            for data in self._stream_lines(server, payload):
                if should_stop():
                    raise GenerationCancelled(f"Generation stopped after {len(parts)} chunks")
                content = data.get("content", "")
                if content:
                    parts.append(content)
                if data.get("stop", False):
                    break
        except urllib.error.HTTPError as e:
            raise GenerationFailure(f"llama.cpp HTTP error: {e.code}", cause=e) from e
        except urllib.error.URLError as e:
            raise GenerationFailure(f"Cannot reach llama.cpp at {server.base_url}: {e.reason}", cause=e) from e

        elapsed_ms = int((time.time() - start_time) * 1000)
        self.logger.debug(f"[LLAMACPP] Stream completed in {elapsed_ms}ms")
        return "".join(parts).strip()

    def get_server_info(self) -> Dict[int, Dict[str, object]]:
        """pid -> status for every server this backend started"""
        return {
            pid: {
                "running": server.process.poll() is None,
                "base_url": server.base_url,
                "model_path": server.model_path,
            }
            for pid, server in self._servers.items()
        }
