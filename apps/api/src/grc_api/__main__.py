import uvicorn

from grc_api.core.settings import settings


def main() -> None:
    """Run the API with uvicorn; autoreload only outside staging and production."""
    uvicorn.run(
        "grc_api.app:create_app",
        factory=True,
        host=settings.server_host,
        port=settings.server_port,
        reload=settings.environment == "development",
    )


if __name__ == "__main__":
    main()
