import uvicorn

from firebase_webhooks.core.config import get_settings


def main() -> None:
    settings = get_settings()
    uvicorn.run(
        "firebase_webhooks.main:app",
        host=settings.listen_host,
        port=settings.listen_port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
