"""Serve the reference backend with uvicorn."""

from __future__ import annotations

import logging

import uvicorn

from .settings import get_settings


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    settings = get_settings()
    uvicorn.run("src.api.app:app", host=settings.host, port=settings.port, log_config=None)


if __name__ == "__main__":
    main()
