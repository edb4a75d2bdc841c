"""
Serves the built frontend for every GET outside /api. "/" -> index.html. Paths containing ".." are refused.
"""
from pathlib import Path

from fastapi import APIRouter, HTTPException
from fastapi.responses import FileResponse

from weather_dashboard.deps import Context

router = APIRouter()


class PathTraversalError(Exception):
    pass


def resolve_static_path(static_root: str, url_path: str) -> Path:
    """Map a URL path onto a file under static_root. Raises PathTraversalError for escapes."""
    if ".." in url_path:
        raise PathTraversalError(url_path)
    root = Path(static_root).resolve()
    relative = url_path.lstrip("/") or "index.html"
    target = (root / relative).resolve()
    if target != root and root not in target.parents:
        raise PathTraversalError(url_path)
    return target


@router.api_route("/api/{rest:path}", methods=["GET", "POST", "PUT", "PATCH", "DELETE"], include_in_schema=False)
def unknown_api(rest: str):
    if rest == "profile":
        raise HTTPException(status_code=405, detail="Method not allowed")
    raise HTTPException(status_code=404, detail="API endpoint not found")


@router.get("/{path:path}", include_in_schema=False)
def static_file(path: str, ctx: Context):
    try:
        target = resolve_static_path(ctx.static_path, path)
    except PathTraversalError:
        raise HTTPException(status_code=403, detail="Access denied")
    if not target.is_file():
        raise HTTPException(status_code=404, detail="File not found")
    return FileResponse(target)
