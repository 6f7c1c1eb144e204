"""
Main entry point for the Tool Intake service.
"""

import uvicorn

from .api import create_app
from .config import get_settings
from .context import build_context
from .logging_config import configure_logging


def main() -> None:
    """Configure logging and serve the API with uvicorn."""
    settings = get_settings()
    configure_logging(settings.log_level, settings.log_format)
    app = create_app(build_context(settings))

    uvicorn.run(
        app,
        host=settings.api_host,
        port=settings.api_port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
