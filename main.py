"""Main entry point for running the Cell Gateway FastAPI application."""

import os

import uvicorn
from loguru import logger

from cellgate.core.config import get_settings
from cellgate.core.logging import setup_logging


def main() -> None:
    """Run the gateway under Uvicorn."""
    settings = get_settings()

    setup_logging(settings)

    # Container platforms pass the listening port in PORT
    port = int(os.environ.get("PORT", settings.api_port))

    # Route uvicorn's stdlib logging through Loguru
    log_config = {
        "version": 1,
        "disable_existing_loggers": False,
        "handlers": {
            "default": {
                "class": "cellgate.core.logging.InterceptHandler",
            },
        },
        "loggers": {
            "uvicorn": {"handlers": ["default"], "level": "INFO", "propagate": False},
            "uvicorn.error": {
                "handlers": ["default"],
                "level": "INFO",
                "propagate": False,
            },
            "uvicorn.access": {
                "handlers": ["default"],
                "level": "INFO",
                "propagate": False,
            },
        },
    }

    mode = "development mode with auto-reload" if settings.debug else "production mode"
    logger.info("Starting Uvicorn on http://{}:{} ({})", settings.api_host, port, mode)

    # The factory is passed as an import string so reload can re-import it
    uvicorn.run(
        "cellgate.api.main:create_app",
        factory=True,
        host=settings.api_host,
        port=port,
        reload=settings.debug,
        log_config=log_config,
    )


if __name__ == "__main__":
    main()
