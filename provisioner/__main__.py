import logging
import os
import sys

import uvicorn

from .config import load_settings, missing_keys


def main() -> None:
    settings = load_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    log = logging.getLogger("provisioner")

    missing = missing_keys(settings)
    if missing:
        log.error("Missing required configuration: %s", ", ".join(missing))
        sys.exit(1)

    log.info("Starting provisioner on port range %s-%s", settings.min_port, settings.max_port)
    uvicorn.run(
        "provisioner.main:create_app",
        factory=True,
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8000")),
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
