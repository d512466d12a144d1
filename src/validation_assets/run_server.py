"""Executable entry point for launching the admin FastAPI application.

Environment Variables:
    PORT (int): Override listening port (default 8000).
    HOST (str): Override bind address (default 0.0.0.0).
    VALIDATION_ASSETS_*: See :mod:`validation_assets.config`.

Example:
    $ python -m validation_assets.run_server
    $ PORT=9000 VALIDATION_ASSETS_PATH=/srv/assets python -m validation_assets.run_server

Production Recommendation:
    Run a single worker: staging entries and reload state are held in-process,
    so several workers would each keep their own pending packages.
        uvicorn validation_assets.app:app --host 0.0.0.0 --port 8000
"""

from __future__ import annotations

import logging
import os

import uvicorn

from .app import app


def main() -> None:
    """Launch the ASGI server with development-friendly defaults."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    uvicorn.run(app, host=os.getenv("HOST", "0.0.0.0"), port=int(os.getenv("PORT", "8000")))


if __name__ == "__main__":
    main()
