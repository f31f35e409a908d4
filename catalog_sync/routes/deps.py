"""Route dependencies."""

from fastapi import HTTPException, Request

from catalog_sync.container import Container


def get_container(request: Request) -> Container:
    container = getattr(request.app.state, "container", None)
    if container is None:
        raise HTTPException(status_code=503, detail="Services not initialized")
    return container
