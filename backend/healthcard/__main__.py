import uvicorn

from healthcard.config import get_settings


def main():
    """Serve the API with uvicorn on HOST:PORT from the environment."""
    settings = get_settings()
    uvicorn.run(
        "healthcard.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    main()
