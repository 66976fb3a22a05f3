"""Run the API with uvicorn on the configured port."""

import uvicorn

from geofeatures import main
from geofeatures.core import config


def run() -> None:
    settings = config.get_settings()
    main.configure_logging(settings.log_level)
    uvicorn.run(
        "geofeatures.main:app",
        host="0.0.0.0",  # noqa: S104
        port=settings.app_port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    run()
