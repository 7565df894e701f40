"""
Entry point for the wirecam service.

Running this script with ``python run.py`` starts the FastAPI server
exposing the model and CAM APIs.  The application defined in
``backend/wirecam/main.py`` is imported after adding ``backend`` to
the Python path.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

import logging
import uvicorn

logging.basicConfig(
    level=logging.DEBUG if os.getenv("CAM_DEBUG") else logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)


def main() -> None:
    """Run the Uvicorn server hosting the wirecam application."""
    backend_dir = Path(__file__).resolve().parent / "backend"
    if str(backend_dir) not in sys.path:
        sys.path.append(str(backend_dir))

    # imported here so sys.path is only touched when run as a script
    from wirecam.main import app  # type: ignore

    host = os.getenv("WIRECAM_HOST", "0.0.0.0")
    port = int(os.getenv("WIRECAM_PORT", "8000"))
    uvicorn.run(app, host=host, port=port)


if __name__ == "__main__":
    main()
