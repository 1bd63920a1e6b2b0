"""Minimal Microsoft Graph REST client.

Authentication uses azure-identity; by default ``AzureCliCredential`` so the
same ``az login`` session that drives the network deployment also drives the
identity and Intune deployments. Only the plumbing needed by the deployers is
here: JSON requests, paging, lookup by display name and throttling retries.
"""

import logging
import time
from typing import Any
from urllib.parse import quote

import requests
from azure.core.credentials import TokenCredential
from azure.core.exceptions import ClientAuthenticationError
from azure.identity import AzureCliCredential

from alzctl.log_sanitizer import LogSanitizer
from alzctl.retry_config import get_retry_config
from alzctl.retry_handler import retry_with_exponential_backoff, should_retry_http_error

logger = logging.getLogger(__name__)

GRAPH_BASE_URL = "https://graph.microsoft.com/v1.0"
GRAPH_BETA_URL = "https://graph.microsoft.com/beta"
GRAPH_SCOPE = "https://graph.microsoft.com/.default"

# Refresh the token this many seconds before it expires
TOKEN_REFRESH_MARGIN = 300


class GraphError(Exception):
    """Raised for a non-2xx Graph response or a failed request.

    Attributes:
        status_code: HTTP status (0 when no response was received)
        code: Graph error code (e.g. "Request_ResourceNotFound")
        retry_after: Seconds from the Retry-After header, if any
    """

    def __init__(
        self,
        message: str,
        status_code: int = 0,
        code: str = "",
        retry_after: float | None = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.message = message
        self.retry_after = retry_after

    @property
    def retryable(self) -> bool:
        return should_retry_http_error(self.status_code)


class GraphTransientError(GraphError):
    """A GraphError worth retrying (throttling, gateway errors, dropped connections)."""

    pass


def escape_odata_string(value: str) -> str:
    """Escape a value for use inside a single-quoted OData literal."""
    return value.replace("'", "''")


def _parse_retry_after(value: str | None) -> float | None:
    if not value:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        return None


def _is_transient(method: str, status_code: int, retry_after: float | None) -> bool:
    """Decide whether a failed response may be sent again.

    POST creates objects, so it is only resent when Graph says the request was
    not processed (throttled, or unavailable with a Retry-After). A gateway
    timeout may hide a committed create.
    """
    if method.upper() != "POST":
        return should_retry_http_error(status_code)
    return status_code == 429 or (status_code == 503 and retry_after is not None)


class GraphClient:
    """Thin wrapper around requests for Microsoft Graph.

    Example:
        >>> graph = GraphClient()
        >>> graph.find_by_display_name("/groups", "sg-alz-platform-admins")
    """

    def __init__(
        self,
        credential: TokenCredential | None = None,
        base_url: str = GRAPH_BASE_URL,
        session: requests.Session | None = None,
        timeout: int = 30,
        beta_url: str = GRAPH_BETA_URL,
    ):
        self.credential = credential or AzureCliCredential()
        self.base_url = base_url.rstrip("/")
        self.beta_url = beta_url.rstrip("/")
        self.session = session or requests.Session()
        self.timeout = timeout
        self._token: str | None = None
        self._token_expires_on: float = 0.0

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------

    def _get_token(self) -> str:
        if self._token and time.time() < self._token_expires_on - TOKEN_REFRESH_MARGIN:
            return self._token
        try:
            access_token = self.credential.get_token(GRAPH_SCOPE)
        except ClientAuthenticationError as e:
            raise GraphError(
                LogSanitizer.create_safe_error_message(
                    e, "Failed to get a Microsoft Graph token. Run 'az login' first"
                ),
                status_code=401,
                code="AuthenticationFailed",
            ) from e
        self._token = access_token.token
        self._token_expires_on = float(access_token.expires_on)
        return self._token

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    def _url(self, path: str, beta: bool = False) -> str:
        if path.startswith("https://"):
            return path
        base = self.beta_url if beta else self.base_url
        return f"{base}/{path.lstrip('/')}"

    def _send(
        self,
        method: str,
        url: str,
        json_body: Any = None,
        params: dict[str, str] | None = None,
        headers: dict[str, str] | None = None,
    ) -> requests.Response:
        request_headers = {
            "Authorization": f"Bearer {self._get_token()}",
            "Content-Type": "application/json",
        }
        if headers:
            request_headers.update(headers)

        try:
            response = self.session.request(
                method,
                url,
                json=json_body,
                params=params,
                headers=request_headers,
                timeout=self.timeout,
            )
        except (requests.ConnectionError, requests.Timeout) as e:
            # A POST that never connected was not received; any later failure may have been
            if method.upper() == "POST" and not isinstance(e, requests.ConnectTimeout):
                raise GraphError(f"{method} {url} failed: {e}") from e
            raise GraphTransientError(f"{method} {url} failed: {e}") from e

        if response.ok:
            return response

        code, message = _error_details(response)
        retry_after = _parse_retry_after(response.headers.get("Retry-After"))
        error_cls = (
            GraphTransientError
            if _is_transient(method, response.status_code, retry_after)
            else GraphError
        )
        raise error_cls(
            f"{method} {url} returned {response.status_code}: {code} {message}".strip(),
            status_code=response.status_code,
            code=code,
            retry_after=retry_after,
        )

    def request(
        self,
        method: str,
        path: str,
        json_body: Any = None,
        params: dict[str, str] | None = None,
        beta: bool = False,
        headers: dict[str, str] | None = None,
    ) -> dict[str, Any] | None:
        """Send a request, retrying throttled and transient failures.

        POST is only resent when Graph did not process it (429, or 503 with
        Retry-After, or a connect timeout).

        Returns:
            Parsed JSON body, or None for an empty response (204)

        Raises:
            GraphError: On a non-2xx response after retries
        """
        config = get_retry_config()
        send = retry_with_exponential_backoff(
            max_attempts=config.graph_max_attempts,
            initial_delay=config.graph_initial_delay,
            max_delay=config.graph_max_delay,
            jitter=config.jitter_enabled,
            retryable_exceptions=(GraphTransientError,),
        )(self._send)

        url = self._url(path, beta)
        if isinstance(json_body, dict):
            logger.debug(f"Graph {method} {url} {LogSanitizer.sanitize_dict(json_body)}")
        else:
            logger.debug(f"Graph {method} {url}")
        response = send(method, url, json_body, params, headers)
        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    def get(
        self,
        path: str,
        params: dict[str, str] | None = None,
        allow_404: bool = False,
        beta: bool = False,
    ) -> dict[str, Any] | None:
        try:
            return self.request("GET", path, params=params, beta=beta)
        except GraphError as e:
            if allow_404 and e.status_code == 404:
                return None
            raise

    def post(self, path: str, body: Any, beta: bool = False) -> dict[str, Any] | None:
        return self.request("POST", path, json_body=body, beta=beta)

    def patch(self, path: str, body: Any, beta: bool = False) -> dict[str, Any] | None:
        return self.request("PATCH", path, json_body=body, beta=beta)

    def delete(self, path: str, beta: bool = False) -> None:
        self.request("DELETE", path, beta=beta)

    def list_all(
        self,
        path: str,
        params: dict[str, str] | None = None,
        beta: bool = False,
    ) -> list[dict[str, Any]]:
        """Collect ``value`` across all pages, following ``@odata.nextLink``."""
        items: list[dict[str, Any]] = []
        page = self.get(path, params=params, beta=beta) or {}
        items.extend(page.get("value", []))
        while page.get("@odata.nextLink"):
            # nextLink already carries the query string
            page = self.get(page["@odata.nextLink"]) or {}
            items.extend(page.get("value", []))
        return items

    def find_by_display_name(
        self,
        path: str,
        display_name: str,
        beta: bool = False,
        select: str | None = None,
    ) -> list[dict[str, Any]]:
        """All objects under ``path`` whose displayName equals ``display_name``."""
        params = {"$filter": f"displayName eq '{escape_odata_string(display_name)}'"}
        if select:
            params["$select"] = select
        return self.list_all(path, params=params, beta=beta)

    def get_user(self, user_id_or_upn: str) -> dict[str, Any] | None:
        """Look up a user by object ID or UPN; None when it does not exist."""
        return self.get(f"/users/{quote(user_id_or_upn, safe='@')}", allow_404=True)


def _error_details(response: requests.Response) -> tuple[str, str]:
    try:
        data = response.json()
    except ValueError:
        return "", LogSanitizer.sanitize(response.text[:200])
    error = data.get("error", {}) if isinstance(data, dict) else data
    if not isinstance(error, dict):
        return "", str(error)
    return error.get("code", ""), LogSanitizer.sanitize(error.get("message", ""))


__all__ = [
    "GRAPH_SCOPE",
    "GraphClient",
    "GraphError",
    "GraphTransientError",
    "escape_odata_string",
]
