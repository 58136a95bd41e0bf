"""Run the authentication API with uvicorn."""

import os

import uvicorn

from feralis_auth.application.config import AuthSettings
from feralis_auth.infrastructure.auth.app import create_app
from feralis_auth.infrastructure.monitoring import setup_logging


def main() -> None:
    settings = AuthSettings.from_env()
    setup_logging(level=settings.log_level, format_type=settings.log_format)
    app = create_app(settings, create_schema=not settings.is_production)
    uvicorn.run(
        app,
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8000")),
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
