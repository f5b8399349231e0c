"""Local agent gateway client and the dispatcher built on it."""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx

from ..exceptions import DispatchUnavailable
from .base import ActionDispatcher

logger = logging.getLogger(__name__)


@dataclass
class GatewayResponse:
    """Result from a gateway call.

    data is the parsed JSON body when the gateway returned JSON,
    otherwise the stripped raw text.
    """
    ok: bool
    data: Any = None
    error: Optional[str] = None


def _interpret(response: httpx.Response) -> GatewayResponse:
    """Turn an HTTP response into a GatewayResponse."""
    try:
        data = response.json()
    except ValueError:
        data = response.text.strip()

    if isinstance(data, dict):
        if data.get("ok") is False:
            return GatewayResponse(ok=False, data=data, error=str(data.get("error") or "gateway returned ok=false"))
        if data.get("error"):
            error = data["error"]
            if isinstance(error, dict):
                error = error.get("message", str(error))
            return GatewayResponse(ok=False, data=data, error=str(error))

    return GatewayResponse(ok=True, data=data)


class GatewayClient:
    """HTTP client for the local agent gateway.

    Endpoints used:
    - POST /rpc          generic {method, params} call
    - POST /hooks/agent  run an isolated agent turn (returns 202)
    - GET  /health       liveness check
    """

    def __init__(
        self,
        host: str = "127.0.0.1",
        port: int = 18791,
        token: Optional[str] = None,
        timeout: float = 30.0,
        client: Optional[httpx.Client] = None,
    ):
        self.base_url = f"http://{host}:{port}"
        self.token = token
        self.timeout = timeout
        self._client = client or httpx.Client(timeout=timeout)

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def _request(
        self,
        method: str,
        path: str,
        body: Optional[dict] = None,
        timeout: Optional[float] = None,
    ) -> GatewayResponse:
        url = f"{self.base_url}{path}"
        timeout = timeout or self.timeout
        try:
            response = self._client.request(
                method, url, json=body, headers=self._headers(), timeout=timeout,
            )
            response.raise_for_status()
        except httpx.TimeoutException:
            return GatewayResponse(ok=False, error=f"Request timed out after {timeout}s")
        except httpx.HTTPStatusError as e:
            return GatewayResponse(ok=False, error=f"HTTP {e.response.status_code}")
        except httpx.RequestError as e:
            return GatewayResponse(ok=False, error=f"Network error: {e}")

        return _interpret(response)

    def rpc(self, method: str, params: Optional[dict] = None, timeout: Optional[float] = None) -> GatewayResponse:
        """Call an RPC method on the gateway."""
        return self._request("POST", "/rpc", {"method": method, "params": params or {}}, timeout)

    def health(self) -> GatewayResponse:
        """GET /health with a short timeout."""
        return self._request("GET", "/health", timeout=5.0)

    def trigger_agent(
        self,
        message: str,
        agent_id: str,
        session_key: Optional[str] = None,
        model: Optional[str] = None,
        timeout_seconds: Optional[int] = None,
    ) -> GatewayResponse:
        """POST /hooks/agent: run an isolated agent turn.

        Optional fields are only sent when set.
        """
        body: Dict[str, Any] = {"message": message, "agentId": agent_id}
        if session_key:
            body["sessionKey"] = session_key
        if model:
            body["model"] = model
        if timeout_seconds:
            body["timeoutSeconds"] = timeout_seconds
        return self._request("POST", "/hooks/agent", body)

    def close(self) -> None:
        self._client.close()


class GatewayDispatcher(ActionDispatcher):
    """Delivers the instruction to an agent through the gateway.

    mode "rpc" sends it as a session message (method defaults to
    sessions.send); mode "hook" starts an isolated agent turn instead.
    """

    def __init__(self, client: GatewayClient, method: str = "sessions.send", mode: str = "rpc"):
        self.client = client
        self.method = method
        self.mode = mode

    def probe(self, target: str) -> bool:
        response = self.client.health()
        if not response.ok:
            logger.debug(f"Gateway health check failed: {response.error}")
        return response.ok

    def deliver(self, target: str, instruction: str) -> None:
        if self.mode == "hook":
            response = self.client.trigger_agent(message=instruction, agent_id=target)
        else:
            response = self.client.rpc(self.method, {"agentId": target, "message": instruction})

        if not response.ok:
            raise DispatchUnavailable(f"gateway rejected dispatch to '{target}': {response.error}")
        logger.info(f"Gateway accepted dispatch to agent '{target}'")

    def close(self) -> None:
        self.client.close()
