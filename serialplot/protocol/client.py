# serialplot/protocol/client.py
from __future__ import annotations

from typing import Any, Callable, Iterable, List, Optional

from .engine import AresplotEngine
from .errors import CommandFailed, CommandTimeout, RequestCancelled, SendFailed


class AresplotClient:
    """
    User-facing Aresplot API over AresplotEngine.
    """

    def __init__(self, engine: AresplotEngine, *, poll: Optional[Callable[[], object]] = None):
        self._engine = engine
        self._poll = poll

    @staticmethod
    def _require_ok(resp: dict, cmd_name: str, *, timeout_s: float | None = None) -> dict:
        status = resp.get("status")
        if status == "ok":
            return resp
        if status == "timeout":
            raise CommandTimeout(cmd_name, timeout_s or 0.0)
        if status == "send_failed":
            raise SendFailed(cmd_name, resp.get("error") or "send_failed")
        if status == "cancelled":
            raise RequestCancelled(cmd_name)
        raise CommandFailed(cmd_name, resp)

    def _request(self, cmd_name: str, **kwargs: Any) -> dict:
        resp = self._engine.send(cmd_name, poll=self._poll, **kwargs)
        return self._require_ok(resp, cmd_name, timeout_s=self._engine.timeout_s)

    def start_monitor(self, variables: Iterable[Any]) -> None:
        """
        Replace the monitored set. Items are Subscription objects,
        (address, type) pairs or {"address", "type"} mappings.
        """
        items: List[dict] = []
        for v in variables:
            if isinstance(v, dict):
                items.append({"address": int(v["address"]), "type": v["type"]})
            elif isinstance(v, (tuple, list)):
                items.append({"address": int(v[0]), "type": v[1]})
            else:
                items.append({"address": int(v.address), "type": v.original_type})

        limit = self._engine.proto.max_monitor_vars
        if len(items) > limit:
            raise ValueError(f"START_MONITOR supports at most {limit} variables (got {len(items)})")

        self._request("START_MONITOR", variables=items)

    def stop_monitor(self) -> None:
        self._request("START_MONITOR", variables=[])

    def set_variable(self, address: int, var_type: Any, value: float) -> None:
        self._request("SET_VARIABLE", address=int(address), type=var_type, value=float(value))

    def set_sample_rate(self, rate_hz: int) -> None:
        rate = int(rate_hz)
        if rate < 0:
            raise ValueError(f"rate_hz must be >= 0 (got {rate})")
        self._request("SET_SAMPLE_RATE", rate_hz=rate)
