"""
Request mirroring middleware for Starlette / FastAPI applications.

Provides:
- install_mirror: attach mirroring to an application
- MirrorMiddleware: the Starlette middleware
- Mirror: the framework-independent mirroring engine
- Settings: Configuration via FRKR_* environment variables

Usage:
    app = FastAPI()
    mirror = install_mirror(app, stream_id={"/api/orders": "orders", "/api/*": "api", "*": "default"})

    # in the app's lifespan shutdown:
    await mirror.aclose()
"""

from typing import Any, Optional

from frkr_mirror.config import Settings
from frkr_mirror.logging_config import configure_logging
from frkr_mirror.middleware import MirrorMiddleware
from frkr_mirror.mirror import Mirror


def install_mirror(
    app,
    stream_id: Any = None,
    settings: Optional[Settings] = None,
    setup_logging: bool = False,
    **options,
) -> Mirror:
    """
    Add MirrorMiddleware to an ASGI application.

    Args:
        app: Starlette or FastAPI application
        stream_id: Routing configuration (see Mirror)
        settings: Full settings object; mutually exclusive with options
        setup_logging: Install the mirror's loguru sink (FRKR_LOG_LEVEL, FRKR_LOG_JSON)
        **options: Individual setting overrides, e.g. transport="grpc"

    Returns:
        The Mirror engine, for shutdown via ``await mirror.aclose()``
    """
    if settings is not None and options:
        raise TypeError("Pass either settings or individual options, not both")
    if settings is None:
        settings = Settings(**options)

    if setup_logging:
        configure_logging(settings.logging.log_level, json=settings.logging.log_json)

    mirror = Mirror(stream_id=stream_id, settings=settings)
    app.add_middleware(MirrorMiddleware, mirror=mirror)
    return mirror


__all__ = [
    "install_mirror",
    "configure_logging",
    "Mirror",
    "MirrorMiddleware",
    "Settings",
]
