import logging
from typing import Any, Optional

import requests

from orders_service.context import RequestContext

logger = logging.getLogger(__name__)


class RemoteCallFailed(Exception):
    """
    Raised by HttpServiceClient for any failed call.

    ``status_code`` is None for transport failures (connection refused,
    DNS, timeout), otherwise the HTTP status the dependency answered.
    Never leaves the clients package: each client re-raises it as its
    own DependencyError subtype.
    """

    def __init__(self, message: str, status_code: Optional[int] = None, detail: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.detail = detail

    @property
    def is_transport(self) -> bool:
        return self.status_code is None


def extract_error_message(response: Optional[requests.Response], default: Optional[str] = None) -> Optional[str]:
    """Pull ``message`` out of a JSON error body, if there is one."""
    if response is None:
        return default
    try:
        body = response.json()
    except ValueError:
        return default
    if isinstance(body, dict) and body.get("message"):
        return str(body["message"])
    return default


class HttpServiceClient:
    """Thin requests wrapper: base URL, bounded timeout, per-request headers."""

    service_name = "service"

    def __init__(self, base_url: str, timeout: float = 5.0, session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def _request(self, method: str, path: str, ctx: RequestContext, json: Any = None) -> requests.Response:
        url = f"{self.base_url}{path}"
        try:
            r = self.session.request(
                method,
                url,
                json=json,
                headers=ctx.outbound_headers(),
                timeout=self.timeout,
            )
        except (requests.ConnectionError, requests.Timeout) as e:
            raise RemoteCallFailed(f"{self.service_name} unreachable: {e}") from e
        except requests.RequestException as e:
            raise RemoteCallFailed(f"{self.service_name} request failed: {e}", status_code=0) from e

        try:
            r.raise_for_status()
        except requests.HTTPError as e:
            raise RemoteCallFailed(
                f"{self.service_name} answered {r.status_code} for {method} {path}",
                status_code=r.status_code,
                detail=extract_error_message(r),
            ) from e
        return r

    @staticmethod
    def _json(r: requests.Response) -> Any:
        try:
            return r.json()
        except ValueError as e:
            raise RemoteCallFailed("response body is not JSON", status_code=r.status_code) from e
