from __future__ import annotations

import json
import socket
from typing import Any, Dict


def send_cmd(host: str, port: int, cmd: str, timeout: float = 2.0, **payload: Any) -> Dict[str, Any]:
    """Send one command line to the control server and return the decoded reply."""
    s = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    s.settimeout(timeout)
    try:
        s.connect((host, port))
        s.sendall((json.dumps({"cmd": cmd, **payload}, ensure_ascii=False) + "\n").encode("utf-8"))
        data = b""
        while True:
            chunk = s.recv(4096)
            if not chunk:
                break
            data += chunk
            if b"\n" in data:
                break
        line = data.split(b"\n", 1)[0].decode("utf-8", errors="ignore")
        try:
            return json.loads(line)
        except json.JSONDecodeError:
            return {"ok": False, "error": "invalid_response", "raw": line}
    except OSError as e:
        return {"ok": False, "error": str(e)}
    finally:
        s.close()
