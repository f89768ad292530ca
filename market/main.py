import logging

from fastapi import FastAPI
from fastapi.staticfiles import StaticFiles

from market.api.errors import register_exception_handlers
from market.api.middleware import MethodOverrideMiddleware
from market.api.router import router
from market.core.config import settings
from market.core.telemetry import setup_telemetry

app = FastAPI(title="Market", version="0.1.0")

app.add_middleware(MethodOverrideMiddleware)
setup_telemetry(app)
register_exception_handlers(app)
app.include_router(router)

if settings.blob_backend == "local":
    app.mount(settings.media_url_prefix, StaticFiles(directory=settings.media_dir, check_dir=False), name="media")


def serve() -> None:
    import uvicorn

    logging.basicConfig(level=settings.log_level)
    uvicorn.run(app, host="0.0.0.0", port=settings.port)


if __name__ == "__main__":
    serve()
