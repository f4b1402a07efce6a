"""HTTP provider: GET and POST requests to external APIs."""

from __future__ import annotations

import sys
from collections.abc import Mapping
from typing import Any

import httpx

from owlflow.registry import Action, ActionInput, AppDefinition, InputValidation, output_schema

URL_VALIDATION = InputValidation(pattern=r"^https?://.+")

RESPONSE_SCHEMA = output_schema(
    status=("number", "HTTP status code"),
    headers=("object", "Response headers"),
    data=("object", "Response data"),
)


class HttpAction(Action):
    """Base for actions that talk HTTP through httpx.

    A transport can be injected (e.g. `httpx.MockTransport` in tests).
    """

    def __init__(self, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self.transport = transport

    def client(self, **kwargs: Any) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=self.transport, **kwargs)

    @staticmethod
    def response_body(response: httpx.Response) -> Any:
        """JSON body when there is one, raw text otherwise."""
        try:
            return response.json()
        except ValueError:
            return response.text


class HttpGetAction(HttpAction):
    id = "get"
    name = "GET Request"
    description = "Make a GET request to a URL"
    inputs = [
        ActionInput(
            id="url",
            label="URL",
            type="string",
            required=True,
            placeholder="https://api.example.com/data",
            validation=URL_VALIDATION,
            description="The URL to send the request to",
        ),
        ActionInput(id="headers", label="Headers", type="object", default={}, description="HTTP headers to include in the request"),
        ActionInput(id="queryParams", label="Query Parameters", type="object", default={}, description="Query parameters to append to the URL"),
    ]
    output_schema = RESPONSE_SCHEMA

    async def execute(
        self,
        inputs: dict[str, Any],
        auth_config: dict[str, Any] | None = None,
    ) -> Mapping[str, Any]:
        params = self.apply_defaults(inputs)
        sys.stderr.write(f"[HTTP] GET {params['url']}\n")
        sys.stderr.flush()
        try:
            async with self.client() as client:
                response = await client.get(
                    params["url"],
                    headers=params["headers"] or {},
                    params={k: str(v) for k, v in (params["queryParams"] or {}).items()},
                )
        except httpx.HTTPError as e:
            raise RuntimeError(f"HTTP GET request failed: {e}") from e

        return {
            "status": response.status_code,
            "headers": dict(response.headers),
            "data": self.response_body(response),
        }


class HttpPostAction(HttpAction):
    id = "post"
    name = "POST Request"
    description = "Make a POST request to a URL"
    inputs = [
        ActionInput(
            id="url",
            label="URL",
            type="string",
            required=True,
            placeholder="https://api.example.com/data",
            validation=URL_VALIDATION,
            description="The URL to send the request to",
        ),
        ActionInput(id="headers", label="Headers", type="object", default={"Content-Type": "application/json"}, description="HTTP headers to include in the request"),
        ActionInput(id="body", label="Body", type="object", default={}, description="Request body to send"),
    ]
    output_schema = RESPONSE_SCHEMA

    async def execute(
        self,
        inputs: dict[str, Any],
        auth_config: dict[str, Any] | None = None,
    ) -> Mapping[str, Any]:
        params = self.apply_defaults(inputs)
        sys.stderr.write(f"[HTTP] POST {params['url']}\n")
        sys.stderr.flush()
        try:
            async with self.client() as client:
                response = await client.post(
                    params["url"],
                    headers=params["headers"] or {},
                    json=params["body"] if params["body"] is not None else {},
                )
        except httpx.HTTPError as e:
            raise RuntimeError(f"HTTP POST request failed: {e}") from e

        return {
            "status": response.status_code,
            "headers": dict(response.headers),
            "data": self.response_body(response),
        }


def build_http_app(transport: httpx.AsyncBaseTransport | None = None) -> AppDefinition:
    return AppDefinition(
        id="http",
        name="HTTP",
        description="Make HTTP requests to external APIs",
        category="Core",
        icon="globe",
        color="#4f46e5",
        actions=[HttpGetAction(transport), HttpPostAction(transport)],
    )
