# serialplot/protocol/errors.py

class ProtocolError(Exception):
    """Base for Aresplot protocol-level failures (framing/command semantics)."""

class CommandFailed(ProtocolError):
    """MCU answered with a non-OK ACK status."""
    def __init__(self, cmd: str, resp: dict):
        super().__init__(f"{cmd} failed: status={resp.get('status_name', resp.get('status'))}")
        self.cmd = cmd
        self.resp = resp
        self.status_code = resp.get("code")
        self.status_name = resp.get("status_name")

class CommandTimeout(ProtocolError):
    def __init__(self, cmd: str, timeout_s: float):
        super().__init__(f"{cmd} timed out after {timeout_s}s")
        self.cmd = cmd
        self.timeout_s = timeout_s

class SendFailed(ProtocolError):
    def __init__(self, cmd: str, reason: str = "send_failed"):
        super().__init__(f"{cmd} send failed ({reason})")
        self.cmd = cmd
        self.reason = reason

class RequestCancelled(ProtocolError):
    def __init__(self, cmd: str):
        super().__init__(f"{cmd} cancelled")
        self.cmd = cmd

class PendingTableFull(ProtocolError):
    pass
