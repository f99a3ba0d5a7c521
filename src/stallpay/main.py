from __future__ import annotations

import logging

import uvicorn

from .env import get_settings


def main() -> None:
    """Main entry point for the checkout API."""

    settings = get_settings()
    logging.basicConfig(
        level=logging.DEBUG if settings.api_debug else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    print(f"Starting {settings.app_name} v{settings.app_version}")
    print(f"Relays: {', '.join(settings.relay_urls)}")
    print(f"Invoice source: {settings.invoice_source}")
    if not settings.buyer_secret_key_hex:
        print("No buyer key configured: orders will be rejected until one is set")
    print(f"API will be available at: http://{settings.api_host}:{settings.api_port}")
    print(f"API Documentation: http://{settings.api_host}:{settings.api_port}/docs")

    # Sessions live in process memory, so a single worker serves every request.
    uvicorn.run(
        "stallpay.api.app:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.api_debug,
        workers=1,
        log_level="debug" if settings.api_debug else "info",
    )


if __name__ == "__main__":
    main()
