"""FastAPI dependencies shared by the route modules."""

from fastapi import Request

from backend.app.services.poster import Poster


def get_poster(request: Request) -> Poster:
    """Return the start-up built :class:`Poster` stored on the app."""
    poster = getattr(request.app.state, "poster", None)
    if poster is None:
        raise RuntimeError("Poster is not initialized; was the app started with its lifespan?")
    return poster
