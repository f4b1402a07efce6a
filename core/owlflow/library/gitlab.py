"""GitLab provider: webhook payload checks and merge request handling."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any
from urllib.parse import quote

import httpx

from owlflow.library.http import HttpAction
from owlflow.registry import Action, ActionInput, AppDefinition, output_schema

GITLAB_API = "https://gitlab.com/api/v4"


class WebhookValidatorAction(Action):
    """Extract the event type of a GitLab webhook payload.

    Token verification against the stored webhook secret happens in the
    ingestion layer; here a non-empty token is taken as valid.
    """

    id = "webhookValidator"
    name = "Webhook Validator"
    description = "Validate Gitlab webhook payloads using the existing webhook system"
    inputs = [
        ActionInput(id="webhookId", label="Webhook ID", required=True, description="The ID of the webhook to use for validation"),
        ActionInput(id="payload", label="Webhook Payload", type="object", required=True, description="The webhook payload received from Gitlab"),
        ActionInput(id="gitlabToken", label="Gitlab-Token Header", required=True, description="The X-Gitlab-Token header value from the webhook request"),
    ]
    output_schema = output_schema(
        isValid=("boolean", "Whether the webhook payload is valid"),
        eventType=("string", "The type of event (e.g., merge_request, push)"),
        payload=("object", "The validated webhook payload"),
    )

    async def execute(
        self,
        inputs: dict[str, Any],
        auth_config: dict[str, Any] | None = None,
    ) -> Mapping[str, Any]:
        payload = inputs.get("payload") or {}
        if not isinstance(payload, Mapping):
            raise ValueError("Gitlab webhook validation failed: payload must be an object")

        body = payload.get("body") if isinstance(payload.get("body"), Mapping) else payload
        event_type = body.get("object_kind") or body.get("event_type") or ""

        return {
            "isValid": bool(inputs.get("gitlabToken")),
            "eventType": event_type,
            "payload": payload,
        }


class CloseMergeRequestAction(HttpAction):
    id = "closeMergeRequest"
    name = "Close Merge Request"
    description = "Close a merge request in a Gitlab repository"
    inputs = [
        ActionInput(id="projectId", label="Project ID", required=True, description="The ID or URL-encoded path of the project"),
        ActionInput(id="mergeRequestIid", label="Merge Request IID", required=True, description="The internal ID of the merge request"),
        ActionInput(id="comment", label="Comment", description="Optional comment to add when closing the merge request"),
    ]
    output_schema = output_schema(
        mergeRequest=("object", "The updated merge request"),
        success=("boolean", "Whether the operation was successful"),
        url=("string", "URL of the merge request"),
    )

    async def execute(
        self,
        inputs: dict[str, Any],
        auth_config: dict[str, Any] | None = None,
    ) -> Mapping[str, Any]:
        if not auth_config or not auth_config.get("accessToken"):
            raise PermissionError("Gitlab authentication is required")

        params = self.apply_defaults(inputs)
        project = quote(str(params["projectId"]), safe="")
        path = f"/projects/{project}/merge_requests/{params['mergeRequestIid']}"
        headers = {"Authorization": f"Bearer {auth_config['accessToken']}"}

        try:
            async with self.client(base_url=GITLAB_API) as client:
                response = await client.put(path, headers=headers, json={"state_event": "close"})
                response.raise_for_status()
                merge_request = response.json()

                if params.get("comment"):
                    note = await client.post(f"{path}/notes", headers=headers, json={"body": params["comment"]})
                    note.raise_for_status()
        except httpx.HTTPError as e:
            raise RuntimeError(f"Gitlab close merge request failed: {e}") from e

        return {
            "mergeRequest": merge_request,
            "success": True,
            "url": merge_request.get("web_url"),
        }


def build_gitlab_app(transport: httpx.AsyncBaseTransport | None = None) -> AppDefinition:
    return AppDefinition(
        id="gitlab",
        name="Gitlab",
        description="Interact with Gitlab repositories, merge requests, and webhooks",
        category="Development",
        icon="gitlab",
        color="#FC6D26",
        default_auth_type="oauth2",
        default_auth_config={
            "authUrl": "https://gitlab.com/oauth/authorize",
            "tokenUrl": "https://gitlab.com/oauth/token",
            "scope": "api",
        },
        actions=[WebhookValidatorAction(), CloseMergeRequestAction(transport)],
    )
