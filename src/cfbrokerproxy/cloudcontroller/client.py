"""Cloud Controller v2 REST client.

Covers the resources the broker proxy touches: services, service plans,
service instances, service keys and spaces. List calls accept Filter
descriptors and follow ``next_url`` pagination transparently. Every call
returns ``(result, warnings)`` where warnings are the decoded values of the
``X-Cf-Warnings`` response header; failures raise CloudControllerError.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Any, Callable, Optional, TypeVar
from urllib.parse import unquote

import requests
import structlog

from .models import (
    Filter,
    JSONObject,
    Service,
    ServiceInstance,
    ServiceKey,
    ServicePlan,
    Space,
)

logger = structlog.get_logger(__name__)

Warnings = list[str]
T = TypeVar("T")

# Public client id used by the cf CLI for the password grant
UAA_CLIENT_ID = "cf"
UAA_CLIENT_SECRET = ""


@dataclass(eq=False)
class CloudControllerError(Exception):
    """Structured error for failed Cloud Controller or UAA calls."""

    code: str
    message: str
    status_code: Optional[int] = None
    details: dict[str, Any] | None = None
    retryable: bool = False

    def __str__(self) -> str:
        return self.message

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "status_code": self.status_code,
            "details": self.details or {},
            "retryable": self.retryable,
        }


def convert_filter_parameters(filters: tuple[Filter, ...] | list[Filter]) -> list[tuple[str, str]]:
    """Render filters as repeated ``q`` query parameters."""
    return [("q", f.format()) for f in filters]


def parse_warnings(response: requests.Response) -> Warnings:
    header = response.headers.get("X-Cf-Warnings")
    if not header:
        return []
    return [unquote(w.strip()) for w in header.split(",") if w.strip()]


class CloudControllerClient:
    """Authenticated session against a Cloud Controller v2 endpoint."""

    def __init__(
        self,
        api_url: str,
        username: str,
        password: str,
        skip_ssl_validation: bool = False,
        timeout: int = 30,
        session: Optional[requests.Session] = None,
    ):
        """
        Initialize the client. No request is made until the first call.

        Args:
            api_url: Cloud Controller base URL (e.g. https://api.example.com)
            username: UAA user for the password grant
            password: UAA password
            skip_ssl_validation: Disable TLS certificate verification
            timeout: Per-request timeout in seconds
            session: Optional preconfigured requests session (used by tests)
        """
        self.api_url = api_url.rstrip("/")
        self.username = username
        self.password = password
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.verify = not skip_ssl_validation
        self.session.headers.update({"Accept": "application/json"})
        self._token_lock = threading.Lock()
        self._authorization: Optional[str] = None

    # ------------------------------------------------------------------
    # Authentication
    # ------------------------------------------------------------------

    def authenticate(self) -> None:
        """Fetch a fresh bearer token via the UAA password grant."""
        with self._token_lock:
            self._authorization = self._fetch_token()

    def _fetch_token(self) -> str:
        info = self._send("GET", f"{self.api_url}/v2/info", authorized=False)
        token_endpoint = _decode_json(info).get("token_endpoint")
        if not token_endpoint:
            raise CloudControllerError(
                code="uaa_endpoint_missing",
                message="Cloud Controller /v2/info did not advertise a token_endpoint",
                details={"api_url": self.api_url},
            )

        response = self._send(
            "POST",
            f"{token_endpoint.rstrip('/')}/oauth/token",
            authorized=False,
            data={
                "grant_type": "password",
                "username": self.username,
                "password": self.password,
            },
            auth=(UAA_CLIENT_ID, UAA_CLIENT_SECRET),
        )
        body = _decode_json(response)
        token = body.get("access_token")
        if not token:
            raise CloudControllerError(
                code="uaa_token_missing",
                message="UAA response did not contain an access_token",
                status_code=response.status_code,
            )

        logger.info("cc_authenticated", api_url=self.api_url, username=self.username)
        return f"{body.get('token_type') or 'bearer'} {token}"

    def _authorization_header(self) -> str:
        with self._token_lock:
            if self._authorization is None:
                self._authorization = self._fetch_token()
            return self._authorization

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def _send(self, method: str, url: str, authorized: bool = True, **kwargs: Any) -> requests.Response:
        headers = kwargs.pop("headers", {})
        if authorized:
            headers["Authorization"] = self._authorization_header()

        response = self._perform(method, url, headers, **kwargs)

        # Expired token: refresh once and replay
        if authorized and response.status_code == 401:
            logger.info("cc_token_expired", method=method, url=url)
            with self._token_lock:
                self._authorization = self._fetch_token()
                headers["Authorization"] = self._authorization
            response = self._perform(method, url, headers, **kwargs)

        if response.status_code >= 400:
            raise self._error_from_response(method, url, response)
        return response

    def _perform(self, method: str, url: str, headers: dict, **kwargs: Any) -> requests.Response:
        try:
            return self.session.request(
                method, url, headers=headers, timeout=self.timeout, **kwargs
            )
        except requests.RequestException as e:
            logger.error("cc_request_failed", method=method, url=url, error=str(e))
            raise CloudControllerError(
                code="cc_unreachable",
                message=f"{method} {url} failed: {e}",
                details={"method": method, "url": url},
                retryable=True,
            ) from e

    def _error_from_response(self, method: str, url: str, response: requests.Response) -> CloudControllerError:
        try:
            body = response.json()
        except ValueError:
            body = None

        if isinstance(body, dict):
            code = body.get("error_code") or body.get("error") or "cc_http_error"
            message = (
                body.get("description")
                or body.get("error_description")
                or response.text
            )
        else:
            code = "cc_http_error"
            message = response.text or response.reason or "unknown error"

        logger.warning(
            "cc_error_response",
            method=method,
            url=url,
            status_code=response.status_code,
            error_code=code,
        )
        return CloudControllerError(
            code=code,
            message=message,
            status_code=response.status_code,
            details={"method": method, "url": url, "body": body},
            retryable=response.status_code >= 500,
        )

    def _request(
        self,
        method: str,
        path: str,
        params: Optional[list[tuple[str, str]]] = None,
        json_body: Optional[dict] = None,
    ) -> tuple[Optional[dict], Warnings]:
        response = self._send(method, f"{self.api_url}{path}", params=params, json=json_body)
        warnings = parse_warnings(response)
        if response.status_code == 204 or not response.content:
            return None, warnings
        return _decode_json(response), warnings

    def _paginate(
        self,
        path: str,
        filters: tuple[Filter, ...],
        parse: Callable[[dict], T],
    ) -> tuple[list[T], Warnings]:
        """Collect every resource across pages."""
        results: list[T] = []
        warnings: Warnings = []
        params: Optional[list[tuple[str, str]]] = convert_filter_parameters(filters)
        next_path: Optional[str] = path

        while next_path:
            page, page_warnings = self._request("GET", next_path, params=params)
            warnings.extend(page_warnings)
            page = page or {}
            results.extend(parse(resource) for resource in page.get("resources") or [])
            # next_url already carries the query string
            next_path = page.get("next_url")
            params = None

        return results, warnings

    # ------------------------------------------------------------------
    # Services and plans
    # ------------------------------------------------------------------

    def get_services(self, *filters: Filter) -> tuple[list[Service], Warnings]:
        return self._paginate("/v2/services", filters, Service.from_resource)

    def get_service_plans(self, *filters: Filter) -> tuple[list[ServicePlan], Warnings]:
        return self._paginate("/v2/service_plans", filters, ServicePlan.from_resource)

    # ------------------------------------------------------------------
    # Service instances
    # ------------------------------------------------------------------

    def get_service_instances(self, *filters: Filter) -> tuple[list[ServiceInstance], Warnings]:
        return self._paginate("/v2/service_instances", filters, ServiceInstance.from_resource)

    def get_service_instance(self, service_instance_guid: str) -> tuple[ServiceInstance, Warnings]:
        body, warnings = self._request("GET", f"/v2/service_instances/{service_instance_guid}")
        return ServiceInstance.from_resource(body or {}), warnings

    def create_service_instance(
        self,
        space_guid: str,
        service_plan_guid: str,
        name: str,
        accepts_incomplete: bool,
        parameters: Optional[JSONObject] = None,
    ) -> tuple[ServiceInstance, Warnings]:
        body, warnings = self._request(
            "POST",
            "/v2/service_instances",
            params=[("accepts_incomplete", _flag(accepts_incomplete))],
            json_body={
                "name": name,
                "space_guid": space_guid,
                "service_plan_guid": service_plan_guid,
                "parameters": parameters or {},
            },
        )
        return ServiceInstance.from_resource(body or {}), warnings

    def delete_service_instance(
        self, service_instance_guid: str, accepts_incomplete: bool
    ) -> tuple[ServiceInstance, Warnings]:
        """Delete an instance.

        With accepts_incomplete the Cloud Controller answers 202 with the
        instance record; a synchronous 204 yields a record carrying only the GUID.
        """
        body, warnings = self._request(
            "DELETE",
            f"/v2/service_instances/{service_instance_guid}",
            params=[("accepts_incomplete", _flag(accepts_incomplete))],
        )
        if not body:
            return ServiceInstance(guid=service_instance_guid), warnings
        return ServiceInstance.from_resource(body), warnings

    # ------------------------------------------------------------------
    # Service keys
    # ------------------------------------------------------------------

    def get_service_keys(self, *filters: Filter) -> tuple[list[ServiceKey], Warnings]:
        return self._paginate("/v2/service_keys", filters, ServiceKey.from_resource)

    def create_service_key(
        self,
        service_instance_guid: str,
        name: str,
        accepts_incomplete: bool,
        parameters: Optional[JSONObject] = None,
    ) -> tuple[ServiceKey, Warnings]:
        body, warnings = self._request(
            "POST",
            "/v2/service_keys",
            params=[("accepts_incomplete", _flag(accepts_incomplete))],
            json_body={
                "service_instance_guid": service_instance_guid,
                "name": name,
                "parameters": parameters or {},
            },
        )
        return ServiceKey.from_resource(body or {}), warnings

    def delete_service_key(
        self, service_key_guid: str, accepts_incomplete: bool
    ) -> tuple[ServiceKey, Warnings]:
        body, warnings = self._request(
            "DELETE",
            f"/v2/service_keys/{service_key_guid}",
            params=[("accepts_incomplete", _flag(accepts_incomplete))],
        )
        if not body:
            return ServiceKey(guid=service_key_guid), warnings
        return ServiceKey.from_resource(body), warnings

    # ------------------------------------------------------------------
    # Spaces
    # ------------------------------------------------------------------

    def get_spaces(self, *filters: Filter) -> tuple[list[Space], Warnings]:
        return self._paginate("/v2/spaces", filters, Space.from_resource)


def _flag(value: bool) -> str:
    return "true" if value else "false"


def _decode_json(response: requests.Response) -> dict:
    """Decode a successful response body, which must be a JSON object."""
    try:
        body = response.json()
    except ValueError as e:
        raise CloudControllerError(
            code="cc_invalid_response",
            message=f"{response.request.method} {response.url} returned a non-JSON body",
            status_code=response.status_code,
            details={"url": response.url, "content_type": response.headers.get("Content-Type")},
        ) from e
    if not isinstance(body, dict):
        raise CloudControllerError(
            code="cc_invalid_response",
            message=f"{response.request.method} {response.url} returned {type(body).__name__}, expected an object",
            status_code=response.status_code,
            details={"url": response.url},
        )
    return body
