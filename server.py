import uvicorn  # type: ignore

from teamaccess.utils import get_logger, setup_logging

log = get_logger(__name__)

if __name__ == "__main__":
    setup_logging()
    log.info("Running server")
    uvicorn.run("teamaccess.main:app", reload=True, host="127.0.0.1", port=8000)
