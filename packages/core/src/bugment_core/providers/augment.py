"""Augment language server client and reviewer.

The Augment server is a Node program that speaks JSON-RPC 2.0 over a Node
IPC channel. The child is spawned with one end of a socket pair and told
about it through ``NODE_CHANNEL_FD``; with JSON serialization every message
on the channel is one JSON document followed by a newline.

A single reader thread owns the receiving side and resolves pending request
futures; everything else runs on the caller's thread.
"""

from __future__ import annotations

import itertools
import json
import logging
import os
import socket
import subprocess
import tempfile
import threading
import time
from concurrent.futures import Future
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from bugment_core.exceptions import (
    AugmentConnectionError,
    AugmentError,
    AugmentRPCError,
    AugmentTimeoutError,
    ConfigError,
)
from bugment_core.providers.base import BaseReviewer

logger = logging.getLogger(__name__)

VIM_VERSION = "9.1.754"
PLUGIN_VERSION = "0.25.1"

_SECRETS_DIR = "vim-augment"
_SECRETS_FILE = "secrets.json"
_SESSIONS_KEY = "augment.sessions"


@dataclass(frozen=True)
class AugmentCredentials:
    access_token: str
    tenant_url: str

    def write(self, data_home: str | Path) -> Path:
        """Write the session file the server reads at startup under ``data_home``."""
        directory = Path(data_home) / _SECRETS_DIR
        directory.mkdir(parents=True, exist_ok=True)
        session = {"accessToken": self.access_token, "tenantURL": self.tenant_url, "scopes": ["email"]}
        path = directory / _SECRETS_FILE
        path.write_text(json.dumps({_SESSIONS_KEY: json.dumps(session)}), encoding="utf-8")
        path.chmod(0o600)
        return path


class AugmentClient:
    """JSON-RPC client for one Augment server process.

    Use as a context manager so the child process is released on every exit
    path, including timeouts::

        with AugmentClient(server_path) as client:
            client.start(workspace)
            client.wait_for_sync()
            text = client.chat(prompt, workspace)
    """

    def __init__(
        self,
        server_path: str,
        node_binary: str = "node",
        env: dict | None = None,
        request_timeout: float = 180.0,
        startup_retries: int = 5,
        startup_min_backoff: float = 2.0,
        startup_max_backoff: float = 10.0,
        startup_timeout: float = 120.0,
        spawn_grace: float = 3.0,
        stop_grace: float = 5.0,
    ):
        self.server_path = server_path
        self.node_binary = node_binary
        self.request_timeout = request_timeout
        self.startup_retries = startup_retries
        self.startup_min_backoff = startup_min_backoff
        self.startup_max_backoff = startup_max_backoff
        self.startup_timeout = startup_timeout
        self.spawn_grace = spawn_grace
        self.stop_grace = stop_grace
        self._extra_env = dict(env or {})

        self._process: subprocess.Popen | None = None
        self._sock: socket.socket | None = None
        self._reader: threading.Thread | None = None
        self._reader_stopped = threading.Event()
        self._reader_stopped.set()
        self._initialized = False

        self._ids = itertools.count(1)
        self._pending: dict[int, Future] = {}
        self._lock = threading.Lock()
        self._write_lock = threading.Lock()
        self._chunk_listeners: list[Callable[[dict], None]] = []

    def __enter__(self) -> AugmentClient:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()

    @property
    def is_ready(self) -> bool:
        return self._sock is not None and self._initialized

    # ------------------------------------------------------------------ #
    # Lifecycle                                                            #
    # ------------------------------------------------------------------ #

    def start(self, workspace: str) -> None:
        """Spawn and initialize the server, retrying with backoff.

        Makes at most ``startup_retries + 1`` attempts, all inside one
        ``startup_timeout`` wall-clock window.
        """
        deadline = time.monotonic() + self.startup_timeout
        delay = self.startup_min_backoff
        attempts = self.startup_retries + 1
        last_error: AugmentError | None = None

        for attempt in range(1, attempts + 1):
            try:
                self._spawn(workspace)
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    raise AugmentTimeoutError("Server startup timeout")
                self._initialize(workspace, timeout=min(self.request_timeout, remaining))
                logger.info("Augment server started (attempt %d/%d)", attempt, attempts)
                return
            except AugmentError as e:
                last_error = e
                self.stop()

            if attempt == attempts:
                break
            if deadline - time.monotonic() <= delay:
                raise AugmentTimeoutError(
                    f"Augment server did not start within {self.startup_timeout:.0f}s: {last_error}"
                ) from last_error
            logger.warning(
                "Augment server start failed (attempt %d/%d): %s. Retrying in %.0fs...",
                attempt,
                attempts,
                last_error,
                delay,
            )
            time.sleep(delay)
            delay = min(delay * 2, self.startup_max_backoff)

        raise AugmentConnectionError(
            f"Augment server failed to start after {attempts} attempt(s): {last_error}"
        ) from last_error

    def _spawn(self, workspace: str) -> None:
        if not Path(self.server_path).is_file():
            raise AugmentConnectionError(f"Augment server not found at {self.server_path}")

        parent_sock, child_sock = socket.socketpair()
        env = {
            **os.environ,
            **self._extra_env,
            "NODE_CHANNEL_FD": str(child_sock.fileno()),
            "NODE_CHANNEL_SERIALIZATION_MODE": "json",
        }
        try:
            process = subprocess.Popen(
                [self.node_binary, self.server_path, "--node-ipc"],
                cwd=workspace,
                env=env,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.PIPE,
                pass_fds=(child_sock.fileno(),),
            )
        except OSError as e:
            parent_sock.close()
            raise AugmentConnectionError(f"Server spawn failed: {e}") from e
        finally:
            child_sock.close()

        self._process = process
        threading.Thread(target=self._drain_stderr, args=(process,), name="augment-stderr", daemon=True).start()

        try:
            code = process.wait(timeout=self.spawn_grace)
        except subprocess.TimeoutExpired:
            self._attach(parent_sock)
            return
        parent_sock.close()
        raise AugmentConnectionError(f"Server process exited during startup with code {code}")

    def _attach(self, sock: socket.socket) -> None:
        """Take ownership of the parent end of the IPC channel and start reading."""
        self._sock = sock
        self._reader_stopped = threading.Event()
        self._reader = threading.Thread(
            target=self._read_loop, args=(sock, self._reader_stopped), name="augment-ipc", daemon=True
        )
        self._reader.start()

    def _initialize(self, workspace: str, timeout: float | None = None) -> None:
        path = os.path.abspath(workspace)
        params = {
            "processId": os.getpid(),
            "capabilities": {},
            "initializationOptions": {
                "editor": "vim",
                "vimVersion": VIM_VERSION,
                "pluginVersion": PLUGIN_VERSION,
            },
            "workspaceFolders": [{"uri": f"file://{path}", "name": os.path.basename(path)}],
        }
        self.request("initialize", params, timeout=timeout)
        self._initialized = True

    def stop(self) -> None:
        """Terminate the server, kill it after ``stop_grace``, and fail pending requests."""
        process, sock = self._process, self._sock
        self._process = None
        self._sock = None
        self._initialized = False

        if process is not None and process.poll() is None:
            process.terminate()
            try:
                process.wait(timeout=self.stop_grace)
            except subprocess.TimeoutExpired:
                logger.warning("Augment server did not exit after SIGTERM; killing it")
                process.kill()
                process.wait()

        if sock is not None:
            try:
                sock.shutdown(socket.SHUT_RDWR)
            except OSError:
                pass  # peer already gone
            sock.close()

        self._reader_stopped.set()
        self._fail_pending(AugmentConnectionError("Server connection closed"))

    # ------------------------------------------------------------------ #
    # JSON-RPC                                                             #
    # ------------------------------------------------------------------ #

    def request(self, method: str, params: dict | None = None, timeout: float | None = None):
        """Send a request and block until its result arrives."""
        if self._sock is None:
            raise AugmentConnectionError("Server is not running")

        request_id = next(self._ids)
        future: Future = Future()
        with self._lock:
            # Nothing would ever resolve a future registered after the reader exits.
            if self._reader_stopped.is_set():
                raise AugmentConnectionError("Server connection closed")
            self._pending[request_id] = future

        message = {"jsonrpc": "2.0", "id": request_id, "method": method}
        if params is not None:
            message["params"] = params
        try:
            self._send(message)
        except OSError as e:
            with self._lock:
                self._pending.pop(request_id, None)
            raise AugmentConnectionError(f"IPC send failed: {e}") from e

        wait = timeout if timeout is not None else self.request_timeout
        try:
            return future.result(timeout=wait)
        except FutureTimeoutError:
            with self._lock:
                self._pending.pop(request_id, None)
            raise AugmentTimeoutError(f"Request timeout: {method} ({wait:.0f}s)") from None

    def _send(self, message: dict) -> None:
        data = (json.dumps(message) + "\n").encode("utf-8")
        with self._write_lock:
            sock = self._sock
            if sock is None:
                raise OSError("channel closed")
            sock.sendall(data)

    def _read_loop(self, sock: socket.socket, stopped: threading.Event) -> None:
        try:
            with sock.makefile("rb") as stream:
                for raw in stream:
                    line = raw.strip()
                    if not line:
                        continue
                    try:
                        message = json.loads(line)
                    except json.JSONDecodeError:
                        logger.debug("Ignoring non-JSON IPC frame: %r", line[:200])
                        continue
                    self._dispatch(message)
        except (OSError, ValueError) as e:
            logger.debug("IPC reader stopped: %s", e)
        stopped.set()
        self._fail_pending(AugmentConnectionError("Server connection closed"))

    def _dispatch(self, message: dict) -> None:
        method = message.get("method")
        if "id" in message and method is None:
            with self._lock:
                future = self._pending.pop(message["id"], None)
            if future is None:
                logger.debug("Response for unknown request id %s", message["id"])
                return
            error = message.get("error")
            if error:
                future.set_exception(
                    AugmentRPCError(error.get("code", -32603), error.get("message", "unknown error"), error.get("data"))
                )
            else:
                future.set_result(message.get("result"))
        elif "id" in message:
            # Server-initiated request; nothing is registered for these.
            logger.debug("Unhandled server request %s", method)
            try:
                self._send({"jsonrpc": "2.0", "id": message["id"], "result": None})
            except OSError as e:
                logger.debug("Could not answer server request %s: %s", method, e)
        elif method == "augment/chatChunk":
            for listener in list(self._chunk_listeners):
                listener(message.get("params") or {})
        elif method == "window/logMessage":
            logger.debug("server: %s", (message.get("params") or {}).get("message", ""))
        elif method:
            logger.debug("Unknown notification %s", method)

    def _fail_pending(self, error: Exception) -> None:
        with self._lock:
            pending = list(self._pending.values())
            self._pending.clear()
        for future in pending:
            if not future.done():
                future.set_exception(error)

    def _drain_stderr(self, process: subprocess.Popen) -> None:
        if process.stderr is None:
            return
        for raw in process.stderr:
            text = raw.decode("utf-8", errors="replace").rstrip()
            if text:
                logger.debug("server stderr: %s", text)

    # ------------------------------------------------------------------ #
    # Augment API                                                          #
    # ------------------------------------------------------------------ #

    def on_chat_chunk(self, listener: Callable[[dict], None]) -> None:
        self._chunk_listeners.append(listener)

    def status(self) -> dict:
        self._require_ready()
        result = self.request("augment/status") or {}
        return {"loggedIn": bool(result.get("loggedIn")), "syncPercentage": result.get("syncPercentage")}

    def wait_for_sync(self, max_attempts: int = 300, interval: float = 1.0) -> None:
        """Poll status until the workspace index reports 100%."""
        for attempt in range(1, max_attempts + 1):
            status = self.status()
            percent = status.get("syncPercentage")
            if percent == 100:
                logger.info("Workspace sync complete")
                return
            if attempt % 10 == 0:
                logger.info("Waiting for workspace sync (%s%%)...", percent if percent is not None else "?")
            if attempt < max_attempts:
                time.sleep(interval)
        raise AugmentTimeoutError(f"Server synchronization timeout after {max_attempts} attempts")

    def chat(self, message: str, file_path: str) -> str:
        self._require_ready()
        params = {
            "textDocumentPosition": {
                "textDocument": {"uri": f"file:///{file_path}"},
                "position": {"line": 0, "character": 0},
            },
            "message": message,
        }
        result = self.request("augment/chat", params) or {}
        return result.get("text") or ""

    def _require_ready(self) -> None:
        if not self.is_ready:
            raise AugmentConnectionError("Server is not initialized. Call start() first.")


class AugmentReviewer(BaseReviewer):
    """Runs one review through a freshly started Augment server.

    Credentials are written to a per-run data directory that only the child
    process sees, and removed with it.
    """

    def __init__(
        self,
        prompt_template: str,
        credentials: AugmentCredentials,
        server_path: str,
        workspace: str,
        node_binary: str = "node",
        client_options: dict | None = None,
        sync_max_attempts: int = 300,
        sync_interval: float = 1.0,
    ):
        super().__init__(prompt_template)
        self.credentials = credentials
        self.server_path = server_path
        self.workspace = workspace
        self.node_binary = node_binary
        self.client_options = dict(client_options or {})
        self.sync_max_attempts = sync_max_attempts
        self.sync_interval = sync_interval

    @classmethod
    def from_config(cls, config: dict, prompt_template: str) -> AugmentReviewer:
        missing = [
            key for key in ("augment_access_token", "augment_tenant_url", "server_path") if not config.get(key)
        ]
        if missing:
            raise ConfigError(f"Missing Augment configuration: {', '.join(missing)}")
        return cls(
            prompt_template=prompt_template,
            credentials=AugmentCredentials(config["augment_access_token"], config["augment_tenant_url"]),
            server_path=config["server_path"],
            workspace=config["workspace"],
            node_binary=config.get("node_binary", "node"),
            client_options={
                "request_timeout": config["request_timeout"],
                "startup_retries": config["startup_retries"],
                "startup_min_backoff": config["startup_min_backoff"],
                "startup_max_backoff": config["startup_max_backoff"],
                "startup_timeout": config["startup_timeout"],
            },
            sync_max_attempts=config["sync_max_attempts"],
            sync_interval=config["sync_interval"],
        )

    def _call_api(self, prompt: str) -> str:
        with tempfile.TemporaryDirectory(prefix="bugment-") as data_home:
            self.credentials.write(data_home)
            client = AugmentClient(
                self.server_path,
                node_binary=self.node_binary,
                env={"XDG_DATA_HOME": data_home},
                **self.client_options,
            )
            with client:
                client.start(self.workspace)
                client.wait_for_sync(self.sync_max_attempts, self.sync_interval)
                return client.chat(prompt, self.workspace)
