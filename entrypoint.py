import os
import uvicorn
from logging_config import get_logger, setup_logging

logger = get_logger(__name__)


def main() -> None:
    log_level = os.getenv("LOG_LEVEL", "INFO")
    setup_logging(log_level=log_level, log_file=os.getenv("LOG_FILE", None))

    host = os.getenv("HOST", "0.0.0.0")
    port = int(os.getenv("PORT", 8000))
    reload = os.getenv("RELOAD", "false").lower() == "true"

    logger.info(f"Starting support signaling server on {host}:{port} (reload={reload})")
    # log_config=None keeps uvicorn on the handlers installed by setup_logging
    uvicorn.run("app:app", host=host, port=port, reload=reload, log_config=None, log_level=log_level.lower())


if __name__ == "__main__":
    main()
