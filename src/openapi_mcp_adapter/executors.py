"""Execution layer: turn validated tool input into one outbound HTTP call."""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx

from .logging import redact_payload, sensitive_keys
from .models import Operation, OperationResult

logger = logging.getLogger(__name__)

DEFAULT_CONTENT_TYPE = "application/json"


class CredentialInjector:
    def __init__(self, header_name: str, default_token: Optional[str] = None) -> None:
        self.header_name = header_name
        self.default_token = default_token

    def build_auth(self, token: Optional[str]) -> Dict[str, str]:
        value = token if token is not None else self.default_token
        if not value:
            return {}
        return {self.header_name: value}


class RestExecutor:
    """Performs the HTTP request behind a tool and maps the outcome to an `OperationResult`.

    Responses with a non-2xx status are reported as error results that carry the
    response status, headers and body. Requests are never retried.
    """

    def __init__(
        self,
        base_url: Optional[str],
        credentials: CredentialInjector,
        timeout_seconds: float = 15,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = base_url
        self.credentials = credentials
        self.timeout_seconds = timeout_seconds
        self.transport = transport
        self._redaction = sensitive_keys(credentials.header_name)

    async def execute(self, operation: Operation, payload: Dict[str, Any]) -> OperationResult:
        try:
            return await self._execute(operation, payload)
        except Exception as exc:  # noqa: BLE001
            logger.exception("Unexpected failure executing %s", operation.id)
            return OperationResult.failure(f"Unexpected error: {exc}")

    async def _execute(self, operation: Operation, payload: Dict[str, Any]) -> OperationResult:
        base_url = payload.get("baseUrl") or self.base_url
        if not base_url:
            return OperationResult.failure(
                "No API base URL configured. Provide baseUrl in the tool input or set API_BASE_URL."
            )

        headers = self._build_headers(payload)

        path_params = payload.get("pathParams") or {}
        missing = missing_path_parameters(operation, path_params)
        if missing:
            return OperationResult.failure(f"Missing required path parameters: {', '.join(missing)}")

        url = build_url(base_url, substitute_path(operation.path, path_params))

        body_present = "body" in payload
        if operation.request_body and operation.request_body.required and not body_present:
            return OperationResult.failure(
                "This operation requires a request body payload, but none was provided."
            )

        content_type: Optional[str] = None
        if body_present:
            content_type = payload.get("contentType") or (
                operation.request_body.default_content_type if operation.request_body else DEFAULT_CONTENT_TYPE
            )
            _drop_header(headers, "content-type")
            headers["Content-Type"] = content_type

        query = {key: value for key, value in (payload.get("query") or {}).items() if value is not None}
        body = payload.get("body")
        body_kwargs = _encode_body(body, content_type) if body_present else {}
        request_context = {
            "method": operation.method,
            "url": url,
            "headers": redact_payload(headers, self._redaction),
            "query": query,
            "body": body,
        }
        logger.info("Executing tool=%s %s %s", operation.id, operation.method, url)

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout_seconds,
                transport=self.transport,
                follow_redirects=True,
            ) as client:
                response = await client.request(
                    operation.method,
                    url,
                    headers=headers,
                    params=query,
                    **body_kwargs,
                )
        except httpx.HTTPError as exc:
            reason = str(exc) or exc.__class__.__name__
            logger.warning("Request failed for tool=%s: %s", operation.id, reason)
            return OperationResult.failure(
                f"Request failed: {reason}",
                {"request": request_context, "response": None},
            )

        data = parse_body(response)
        if response.is_success:
            return OperationResult(
                text=render(data),
                structured={
                    "status": response.status_code,
                    "statusText": response.reason_phrase,
                    "data": data,
                    "headers": dict(response.headers),
                },
            )

        logger.warning(
            "Request for tool=%s returned status %s", operation.id, response.status_code
        )
        message = f"Request failed with status {response.status_code}"
        if response.reason_phrase:
            message += f" ({response.reason_phrase})"
        message += "."
        rendered = render(data)
        return OperationResult.failure(
            f"{message}\n{rendered}" if rendered else message,
            {
                "request": request_context,
                "response": {
                    "status": response.status_code,
                    "statusText": response.reason_phrase,
                    "headers": dict(response.headers),
                    "data": data,
                },
            },
        )

    def _build_headers(self, payload: Dict[str, Any]) -> Dict[str, str]:
        headers: Dict[str, str] = dict(payload.get("headers") or {})

        accept = payload.get("accept")
        if accept:
            _drop_header(headers, "accept")
            headers["Accept"] = accept
        elif not _has_header(headers, "accept"):
            headers["Accept"] = DEFAULT_CONTENT_TYPE

        for name, value in self.credentials.build_auth(payload.get("token")).items():
            _drop_header(headers, name.lower())
            headers[name] = value
        return headers


def missing_path_parameters(operation: Operation, path_params: Dict[str, Any]) -> List[str]:
    return [
        parameter.name
        for parameter in operation.parameters.path
        if parameter.required and path_params.get(parameter.name) is None
    ]


def substitute_path(path: str, path_params: Dict[str, Any]) -> str:
    for key, value in path_params.items():
        if value is None:
            continue
        path = path.replace(f"{{{key}}}", quote(_to_text(value), safe=""))
    return path


def build_url(base_url: str, path: str) -> str:
    return f"{base_url.rstrip('/')}/{path.lstrip('/')}"


def parse_body(response: httpx.Response) -> Any:
    if not response.content:
        return ""
    text = response.text
    try:
        return json.loads(text)
    except ValueError:
        return text


def render(data: Any) -> str:
    if isinstance(data, str):
        return data
    try:
        return json.dumps(data, indent=2, ensure_ascii=False)
    except (TypeError, ValueError):
        return str(data)


def _encode_body(body: Any, content_type: Optional[str]) -> Dict[str, Any]:
    media_type = (content_type or DEFAULT_CONTENT_TYPE).split(";")[0].strip().lower()
    if "json" in media_type:
        return {"content": json.dumps(body)}
    if media_type == "application/x-www-form-urlencoded" and isinstance(body, dict):
        return {"data": {key: _to_text(value) for key, value in body.items() if value is not None}}
    if isinstance(body, str):
        return {"content": body}
    if isinstance(body, bytes):
        return {"content": body}
    return {"content": json.dumps(body)}


def _to_text(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value)
    return str(value)


def _has_header(headers: Dict[str, str], name: str) -> bool:
    return any(key.lower() == name for key in headers)


def _drop_header(headers: Dict[str, str], name: str) -> None:
    for key in [key for key in headers if key.lower() == name]:
        del headers[key]
