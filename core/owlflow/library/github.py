"""GitHub provider: repositories and issues."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import httpx

from owlflow.library.http import HttpAction
from owlflow.registry import ActionInput, AppDefinition, InputOption, InputValidation, output_schema

GITHUB_API = "https://api.github.com"


def _headers(auth_config: dict[str, Any] | None) -> dict[str, str]:
    if not auth_config or not auth_config.get("accessToken"):
        raise PermissionError("GitHub authentication is required")
    return {
        "Authorization": f"token {auth_config['accessToken']}",
        "Accept": "application/vnd.github.v3+json",
    }


class ListReposAction(HttpAction):
    id = "listRepos"
    name = "List Repositories"
    description = "Get a list of repositories for the authenticated user"
    inputs = [
        ActionInput(
            id="visibility",
            label="Visibility",
            default="all",
            options=[
                InputOption(label="All", value="all"),
                InputOption(label="Public", value="public"),
                InputOption(label="Private", value="private"),
            ],
            description="Filter repositories by visibility",
        ),
        ActionInput(
            id="sort",
            label="Sort By",
            default="updated",
            options=[
                InputOption(label="Last Updated", value="updated"),
                InputOption(label="Name", value="full_name"),
                InputOption(label="Created", value="created"),
            ],
            description="Sort repositories by this field",
        ),
        ActionInput(
            id="perPage",
            label="Results Per Page",
            type="number",
            default=30,
            validation=InputValidation(min=1, max=100),
            description="Number of repositories to return per page",
        ),
    ]
    output_schema = output_schema(
        repositories=("array", "List of repositories"),
        totalCount=("number", "Total number of repositories"),
    )

    async def execute(
        self,
        inputs: dict[str, Any],
        auth_config: dict[str, Any] | None = None,
    ) -> Mapping[str, Any]:
        headers = _headers(auth_config)
        params = self.apply_defaults(inputs)
        try:
            async with self.client(base_url=GITHUB_API) as client:
                response = await client.get(
                    "/user/repos",
                    headers=headers,
                    params={
                        "visibility": params["visibility"],
                        "sort": params["sort"],
                        "per_page": str(params["perPage"]),
                    },
                )
                response.raise_for_status()
        except httpx.HTTPError as e:
            raise RuntimeError(f"GitHub list repositories failed: {e}") from e

        repositories = response.json()
        return {"repositories": repositories, "totalCount": len(repositories)}


class CreateIssueAction(HttpAction):
    id = "createIssue"
    name = "Create Issue"
    description = "Create a new issue in a repository"
    inputs = [
        ActionInput(id="owner", label="Repository Owner", required=True, description="The owner of the repository"),
        ActionInput(id="repo", label="Repository Name", required=True, description="The name of the repository"),
        ActionInput(id="title", label="Issue Title", required=True, description="The title of the issue"),
        ActionInput(id="body", label="Issue Body", description="The body text of the issue"),
        ActionInput(id="labels", label="Labels", type="array", description="Labels to apply to the issue"),
        ActionInput(id="assignees", label="Assignees", type="array", description="GitHub usernames to assign to the issue"),
    ]
    output_schema = output_schema(
        issue=("object", "The created issue"),
        url=("string", "URL of the created issue"),
    )

    async def execute(
        self,
        inputs: dict[str, Any],
        auth_config: dict[str, Any] | None = None,
    ) -> Mapping[str, Any]:
        headers = _headers(auth_config)
        params = self.apply_defaults(inputs)
        payload = {
            "title": params["title"],
            "body": params.get("body") or "",
            "labels": params.get("labels") or [],
            "assignees": params.get("assignees") or [],
        }
        try:
            async with self.client(base_url=GITHUB_API) as client:
                response = await client.post(
                    f"/repos/{params['owner']}/{params['repo']}/issues",
                    headers=headers,
                    json=payload,
                )
                response.raise_for_status()
        except httpx.HTTPError as e:
            raise RuntimeError(f"GitHub create issue failed: {e}") from e

        issue = response.json()
        return {"issue": issue, "url": issue.get("html_url")}


def build_github_app(transport: httpx.AsyncBaseTransport | None = None) -> AppDefinition:
    return AppDefinition(
        id="github",
        name="GitHub",
        description="Interact with GitHub repositories, issues, and pull requests",
        category="Development",
        icon="github",
        color="#24292e",
        default_auth_type="oauth2",
        default_auth_config={
            "authUrl": "https://github.com/login/oauth/authorize",
            "tokenUrl": "https://github.com/login/oauth/access_token",
            "scope": "repo",
        },
        actions=[ListReposAction(transport), CreateIssueAction(transport)],
    )
