"""HTTP API for the cherry service.

Routes
------
POST /api/generate-cherry      Generate and store a spec.
POST /api/build-cherry         Build a stored spec (once).
GET  /api/download/{cherryId}  Stream a built cherry.
GET  /api/download-desktop     Stream the newest desktop build.
GET  /api/health               Liveness plus whether the LLM is configured.

Errors are returned as ``{"error": <label>, "message": <detail>}``.
"""

from __future__ import annotations

from typing import Any

from fastapi import Body, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import FileResponse, JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from . import __version__
from .config import Config
from .errors import (
    BuildInProgressError,
    CherryBuildError,
    CherryNotFoundError,
    CherryRequestError,
    ConfigurationError,
    SpecConsumedError,
    TinyAppError,
)
from .pipeline import CherryPipelineService
from .utils import console, print_error


class BuildCherryRequest(BaseModel):
    """Body of ``POST /api/build-cherry``."""

    model_config = ConfigDict(populate_by_name=True)

    cherry_id: str | None = Field(default=None, alias="cherryId")


def _error_body(error: str, message: str, **extra: Any) -> dict[str, Any]:
    return {"error": error, "message": message, **extra}


def _status_for(exc: TinyAppError) -> int:
    if isinstance(exc, CherryNotFoundError):
        return 404
    if isinstance(exc, (BuildInProgressError, SpecConsumedError)):
        return 409
    if isinstance(exc, ConfigurationError):
        return 400
    return 500


def create_app(
    config: Config | None = None,
    service: CherryPipelineService | None = None,
) -> FastAPI:
    """Build the FastAPI application.

    Args:
        config: Service configuration; read from the environment when omitted.
        service: Pre-wired pipeline service (tests inject stub runners here).
    """
    config = config or (service.config if service else Config.from_env())
    service = service or CherryPipelineService.from_config(config)

    app = FastAPI(title="TinyApp Factory", version=__version__)
    app.state.config = config
    app.state.service = service

    # -- Error mapping -----------------------------------------------------

    @app.exception_handler(CherryBuildError)
    async def _build_failed(request: Request, exc: CherryBuildError) -> JSONResponse:
        return JSONResponse(
            status_code=500,
            content=_error_body(exc.label, str(exc), buildSteps=exc.steps),
        )

    @app.exception_handler(TinyAppError)
    async def _domain_error(request: Request, exc: TinyAppError) -> JSONResponse:
        return JSONResponse(
            status_code=_status_for(exc), content=_error_body(exc.label, str(exc))
        )

    @app.exception_handler(RequestValidationError)
    async def _invalid_request(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        errors = exc.errors()
        message = str(errors[0].get("msg")) if errors else "Invalid request body"
        return JSONResponse(
            status_code=400, content=_error_body("Invalid request", message)
        )

    @app.exception_handler(Exception)
    async def _unexpected(request: Request, exc: Exception) -> JSONResponse:
        print_error(f"Unhandled error on {request.url.path}: {exc!r}")
        return JSONResponse(
            status_code=500, content=_error_body("Internal server error", str(exc))
        )

    # -- Routes ------------------------------------------------------------

    @app.post("/api/generate-cherry")
    async def generate_cherry(payload: dict[str, Any] = Body(...)) -> dict[str, Any]:
        spec = await service.generate(payload)
        return spec.to_response()

    @app.post("/api/build-cherry")
    async def build_cherry(payload: BuildCherryRequest) -> dict[str, Any]:
        if not payload.cherry_id:
            raise CherryRequestError("cherryId is required")
        result = await service.build(payload.cherry_id)
        return result.to_response()

    @app.get("/api/download/{cherry_id}")
    async def download_cherry(cherry_id: str) -> FileResponse:
        path = service.resolve_download(cherry_id)
        return FileResponse(
            path, filename=path.name, media_type="application/octet-stream"
        )

    @app.get("/api/download-desktop")
    async def download_desktop() -> FileResponse:
        path = service.latest_desktop_artifact()
        if path is None:
            raise CherryNotFoundError("desktop", "No desktop app found")
        return FileResponse(
            path, filename=path.name, media_type="application/octet-stream"
        )

    @app.get("/api/health")
    async def health() -> dict[str, Any]:
        return {"status": "ok", "llm": config.llm.enabled}

    return app


def main() -> None:
    """Entry point for ``tinyapp-server``."""
    import uvicorn

    config = Config.from_env()
    config.ensure_service_directories()
    console.print(
        f"[bold cyan]TinyApp Factory[/bold cyan] serving on "
        f"http://{config.server.host}:{config.server.port} "
        f"(LLM {'enabled' if config.llm.enabled else 'disabled, rule-based specs'})"
    )
    uvicorn.run(create_app(config), host=config.server.host, port=config.server.port)


if __name__ == "__main__":
    main()
