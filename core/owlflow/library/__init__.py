from __future__ import annotations

from typing import Any

from owlflow.library.github import build_github_app
from owlflow.library.gitlab import build_gitlab_app
from owlflow.library.http import build_http_app
from owlflow.library.transform import build_transform_app
from owlflow.registry import AppDefinition


def builtin_apps(*, transport: Any = None) -> list[AppDefinition]:
    """Fresh definitions of every built-in provider."""
    return [
        build_http_app(transport),
        build_github_app(transport),
        build_transform_app(),
        build_gitlab_app(transport),
    ]


__all__ = [
    "build_github_app",
    "build_gitlab_app",
    "build_http_app",
    "build_transform_app",
    "builtin_apps",
]
