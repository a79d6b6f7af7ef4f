from __future__ import annotations

import json
import logging
import socketserver
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List

from ibancheck.utils.logging_setup import log_event
from ibancheck.utils.request_context import new_correlation_id, request_scope
from ibancheck.validation.iban import EmptyBatchError, evaluate_batch, normalize_iban

log = logging.getLogger(__name__)


@dataclass
class ControlContext:
    get_status: Callable[[], Dict[str, Any]]
    request_stop: Callable[[], None]
    normalize: bool = False
    workers: int = 1


@dataclass
class _Counters:
    requests: int = 0
    lock: threading.Lock = field(default_factory=threading.Lock)


def _candidates_from(req: Dict[str, Any]) -> List[Any]:
    if "ibans" in req:
        raw = req["ibans"]
        if raw is None:
            return []
        return list(raw) if isinstance(raw, (list, tuple)) else [raw]
    if "iban" in req:
        return [req["iban"]]
    return []


def handle_validate(req: Dict[str, Any], ctx: ControlContext) -> Dict[str, Any]:
    candidates = _candidates_from(req)
    if not all(isinstance(c, str) for c in candidates):
        return {"ok": False, "error": "invalid_input"}
    if ctx.normalize:
        candidates = [normalize_iban(c) for c in candidates]
    with request_scope(batch_size=len(candidates)):
        try:
            verdicts = evaluate_batch(candidates, workers=ctx.workers)
        except EmptyBatchError:
            log.warning("validate_iban called without candidates")
            return {"ok": False, "error": "empty_batch"}
        log_event(
            log,
            "bridge.validate",
            "Validated IBAN batch",
            size=len(verdicts),
            valid=sum(1 for v in verdicts if v.is_valid),
        )
    return {"ok": True, "verdicts": [v.to_dict() for v in verdicts]}


def dispatch(req: Dict[str, Any], ctx: ControlContext) -> Dict[str, Any]:
    cmd = str(req.get("cmd") or "status")
    with request_scope(correlation_id=str(req.get("correlation_id") or new_correlation_id()), command=cmd):
        if cmd == "validate_iban":
            return handle_validate(req, ctx)
        if cmd == "stop":
            ctx.request_stop()
            return {"ok": True}
        if cmd == "ping":
            return {"ok": True, "pong": True}
        if cmd == "status":
            return ctx.get_status()
        log.warning("Unknown command: %s", cmd)
        return {"ok": False, "error": "unknown_command"}


class _Handler(socketserver.BaseRequestHandler):
    def handle(self):
        data = b""
        while True:
            chunk = self.request.recv(4096)
            if not chunk:
                break
            data += chunk
            if b"\n" in data:
                break
        line = data.split(b"\n", 1)[0].decode("utf-8", errors="ignore").strip()
        try:
            req = json.loads(line) if line else {}
        except (ValueError, RecursionError):
            # invalid or too deeply nested JSON
            log.warning("Malformed request line ignored: %r", line[:200])
            req = {}
        if not isinstance(req, dict):
            req = {}
        server = self.server
        ctx: ControlContext = server.ctx  # type: ignore[attr-defined]
        with server.counters.lock:  # type: ignore[attr-defined]
            server.counters.requests += 1  # type: ignore[attr-defined]
        resp = dispatch(req, ctx)
        self.request.sendall((json.dumps(resp, ensure_ascii=False) + "\n").encode("utf-8"))


class ControlServer:
    def __init__(self, host: str, port: int, ctx: ControlContext):
        self._server = socketserver.ThreadingTCPServer((host, port), _Handler)
        self._server.daemon_threads = True
        self._server.ctx = ctx  # type: ignore[attr-defined]
        self._server.counters = _Counters()  # type: ignore[attr-defined]
        self._thread: threading.Thread | None = None

    @property
    def address(self) -> tuple[str, int]:
        host, port = self._server.server_address[:2]
        return str(host), int(port)

    @property
    def requests_served(self) -> int:
        return self._server.counters.requests  # type: ignore[attr-defined]

    def start(self):
        self._thread = threading.Thread(target=self._server.serve_forever, daemon=True)
        self._thread.start()
        log.info("Control server listening on %s:%s", *self.address)

    def shutdown(self):
        self._server.shutdown()
        self._server.server_close()
        if self._thread is not None:
            self._thread.join(timeout=5.0)
            self._thread = None
        log.info("Control server stopped")
