# api.py
import logging
from typing import Any, Dict, Optional

import httpx

log = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0


class StoreError(Exception):
    """A failed call to the service; `message` is the server's error text verbatim."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class RequestTimeout(StoreError):
    """The service did not answer within the request timeout."""


class GenerationTimeout(Exception):
    """The generation call did not answer within the client's hard timeout."""


class QuotaExceeded(Exception):
    """The signed-in account has no generations left on its plan."""


def _error_text(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"

    if isinstance(data, dict):
        if data.get("error"):
            return str(data["error"])
        detail = data.get("detail")
        if isinstance(detail, list):
            return "; ".join(str(d.get("msg", d)) if isinstance(d, dict) else str(d) for d in detail)
        if detail:
            return str(detail)
    return f"HTTP {response.status_code}"


class ApiClient:
    """
    Thin wrapper over an `httpx.Client` pointed at the service.

    Any non-2xx answer, a body with `success: false` or a transport failure
    raises StoreError. Timeouts raise its RequestTimeout subclass.
    """

    def __init__(self, http: httpx.Client, token: Optional[str] = None, prefix: str = "/api"):
        self.http = http
        self.token = token
        self.prefix = prefix.rstrip("/")
        self.profile: Optional[Dict[str, Any]] = None

    @property
    def signed_in(self) -> bool:
        return self.token is not None

    def _headers(self) -> Dict[str, str]:
        if self.token:
            return {"Authorization": f"Bearer {self.token}"}
        return {}

    def request(self, method: str, path: str, timeout: Optional[float] = None, **kwargs) -> Dict[str, Any]:
        headers = {**self._headers(), **kwargs.pop("headers", {})}
        try:
            response = self.http.request(
                method,
                f"{self.prefix}{path}",
                headers=headers,
                timeout=timeout or DEFAULT_TIMEOUT,
                **kwargs,
            )
        except httpx.TimeoutException as e:
            log.error(f"{method} {path} timed out: {e}")
            raise RequestTimeout(f"The service did not answer in time: {e}")
        except httpx.RequestError as e:
            log.error(f"{method} {path} failed: {e}")
            raise StoreError(f"Could not reach the service: {e}")

        if response.status_code >= 400:
            message = _error_text(response)
            log.error(f"{method} {path} failed ({response.status_code}): {message}")
            raise StoreError(message, status_code=response.status_code)

        data = response.json() if response.content else {}
        if isinstance(data, dict) and data.get("success") is False:
            raise StoreError(str(data.get("error") or "Request failed"), status_code=response.status_code)
        return data

    def sign_in(self, email: str, password: str) -> Dict[str, Any]:
        data = self.request("POST", "/auth/login", data={"username": email, "password": password})
        self.token = data["access_token"]
        return self.refresh_profile()

    def sign_out(self) -> None:
        self.token = None
        self.profile = None

    def refresh_profile(self) -> Dict[str, Any]:
        self.profile = self.request("GET", "/auth/me")
        return self.profile
