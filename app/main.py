import logging
import os
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI, Request, status
from fastapi.exceptions import HTTPException, RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

# Load environment variables from .env file
print("\n" + "=" * 60)
print("🔧 LOADING ENVIRONMENT CONFIGURATION")
print("=" * 60)

env_path = Path(__file__).parent.parent / ".env"
print(f"Looking for .env file at: {env_path}")

if env_path.exists():
    print("✓ .env file found")
    load_dotenv(dotenv_path=env_path, override=False)
    print("✓ .env file loaded successfully")
else:
    print(f"⚠ .env file not found at: {env_path}")
    print("  Create it with: GOOGLE_API_KEY=your_key_here")

key = os.environ.get("GOOGLE_API_KEY")
if key:
    print(f"✓ GOOGLE_API_KEY loaded: {key[:6]}...")
else:
    print("⚠ GOOGLE_API_KEY not set; only users with their own key can restyle")

print("=" * 60 + "\n")

from app.api.v1.routes import router as api_v1_router  # noqa: E402
from app.config import get_settings  # noqa: E402

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


def _format_validation_errors(exc: RequestValidationError) -> list:
    details = []
    for error in exc.errors():
        # Drop the leading "body"/"path" marker so fields read like the JSON keys.
        location = [str(part) for part in error.get("loc", ()) if part not in ("body", "path", "query")]
        details.append(
            {
                "field": ".".join(location),
                "message": error.get("msg", ""),
                "type": error.get("type", ""),
            }
        )
    return details


def create_app() -> FastAPI:
    """
    Application factory for the Page Restyle API.

    Keeping this as a separate function makes it easier to extend
    configuration and testing later.
    """
    settings = get_settings()

    app = FastAPI(
        title="Page Restyle API",
        version="0.1.0",
        description="Backend for AI restyling of multi-section landing pages.",
    )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": "Validation failed", "details": _format_validation_errors(exc)},
        )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.detail},
            headers=getattr(exc, "headers", None),
        )

    # Infrastructure-level health check (non-versioned) primarily for ops.
    @app.get("/health", tags=["health"])
    async def root_health_check() -> dict:
        """Simple root health check endpoint."""
        return {"status": "ok"}

    # Public, versioned API routes.
    app.include_router(api_v1_router)

    # Generated images are served locally only when the public URL is a path;
    # an absolute URL means something else (e.g. a CDN) serves the storage dir.
    settings.storage_dir.mkdir(parents=True, exist_ok=True)
    if settings.public_base_url.startswith("/"):
        app.mount(settings.public_base_url, StaticFiles(directory=str(settings.storage_dir)), name="media")
    else:
        logger.info("Images are published at %s; not mounting local media route", settings.public_base_url)

    return app


app = create_app()
