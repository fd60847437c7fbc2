import uvicorn

from src.api import config


# PUBLIC_INTERFACE
def run() -> None:
    """Serve the API with uvicorn on HOST:PORT."""
    config.configure_logging()
    uvicorn.run(
        "src.api.main:app",
        host=config.server_host(),
        port=config.server_port(),
        log_level=config.log_level().lower(),
    )


if __name__ == "__main__":
    run()
