from __future__ import annotations

import logging

from bevdist.application.container import AppContainer, build_container
from bevdist.config import load_settings
from bevdist.logging_config import setup_logging


def main() -> AppContainer:
    settings = load_settings()
    setup_logging(settings.paths.logs_dir, level=settings.log_level)

    container = build_container(settings.paths.db_path, busy_timeout=settings.busy_timeout)
    logging.getLogger(__name__).info(
        "bevdist_started db=%s busy_timeout=%s", settings.paths.db_path, settings.busy_timeout
    )
    return container


if __name__ == "__main__":
    main()
