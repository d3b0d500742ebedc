import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.staticfiles import StaticFiles

from dal.metadata_store import MetadataStore
from routes.gallery_route import router as gallery_router
from services.blob_storage import get_storage_instance
from services.image_cache import ImageCache
from services.thumbnail_generator import ThumbnailGenerator
from utils.settings import GallerySettings

from dotenv import load_dotenv

load_dotenv()  # Load environment variables from .env file if present

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")


def _attach_state(app: FastAPI, settings: GallerySettings) -> None:
    app.state.settings = settings
    app.state.store = MetadataStore(settings.metadata_path, settings.public_metadata_path, lock=asyncio.Lock())
    app.state.storage = get_storage_instance(settings)
    app.state.cache = ImageCache(
        ttl_seconds=settings.cache_ttl_seconds,
        result_ttl_seconds=settings.result_cache_ttl_seconds,
        max_results=settings.result_cache_max_entries,
    )
    app.state.processor = ThumbnailGenerator()


def create_app(settings: Optional[GallerySettings] = None) -> FastAPI:
    """
    Create and configure the FastAPI application instance.

    Settings are read from the environment unless given explicitly.
    """
    settings = settings or GallerySettings.from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Lifespan manager that builds the catalog store, blob storage, cache
        and image processor and attaches them to `app.state`.
        """
        _attach_state(app, settings)
        logging.info(
            "Gallery started with %s storage, catalog at %s", settings.storage_backend, settings.metadata_path
        )
        yield

    app = FastAPI(lifespan=lifespan)

    # Local blobs are served by the app itself.
    if settings.storage_backend == "local" and settings.public_base_url.startswith("/"):
        settings.local_storage_dir.mkdir(parents=True, exist_ok=True)
        app.mount(
            settings.public_base_url.rstrip("/"),
            StaticFiles(directory=settings.local_storage_dir),
            name="blobs",
        )

    @app.get("/health")
    async def health(request: Request):
        """
        Simple health check that reports which collaborators are configured.
        """
        state = request.app.state
        return {
            "ok": True,
            "store_initialized": hasattr(state, "store"),
            "storage_backend": settings.storage_backend,
            "cache": state.cache.status() if hasattr(state, "cache") else None,
        }

    # Register application routers
    app.include_router(gallery_router)

    return app


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(create_app(), host="0.0.0.0", port=8000)
