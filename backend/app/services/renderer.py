"""HTML rendering of post listings with Jinja2."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Protocol, runtime_checkable

from jinja2 import Environment, FileSystemLoader, StrictUndefined, TemplateError, select_autoescape

from backend.app.models.post import StoredPost

logger = logging.getLogger(__name__)

POSTS_TEMPLATE = "posts.html"


class RenderError(Exception):
    """Raised when the posts template fails to load or execute."""


@runtime_checkable
class Renderer(Protocol):
    def render(self, posts: Sequence[StoredPost], next_page: int, prev_page: int) -> str:
        """Return the HTML page for *posts* and the navigation values."""
        ...


class JinjaRenderer:
    """Renders ``posts.html`` from a templates directory.

    The template is compiled once, at construction, and shared read-only
    by every request afterwards.
    """

    def __init__(self, templates_path: str, template_name: str = POSTS_TEMPLATE) -> None:
        env = Environment(
            loader=FileSystemLoader(templates_path),
            autoescape=select_autoescape(["html"]),
            undefined=StrictUndefined,
        )
        try:
            self._template = env.get_template(template_name)
        except TemplateError as exc:
            raise RenderError(f"cannot load template '{template_name}': {exc}") from exc
        logger.info("template_loaded: path=%s name=%s", templates_path, template_name)

    def render(self, posts: Sequence[StoredPost], next_page: int, prev_page: int) -> str:
        try:
            return self._template.render(
                posts=list(posts),
                next_page=next_page,
                prev_page=prev_page,
            )
        except TemplateError as exc:
            raise RenderError(f"failed to render posts: {exc}") from exc
