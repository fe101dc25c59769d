"""
main.py: Server launcher and entry point.

Run this file to start the scheduling API:

    python main.py

This file does NOT contain application logic. See app.py for the FastAPI
application and service wiring.

Direct uvicorn usage:
    uvicorn app:app --reload
"""

from __future__ import annotations

import uvicorn

from backend.utils.config import get_settings


HOST = "127.0.0.1"
PORT = 8000


def main() -> None:
    """Start the scheduling API server."""
    settings = get_settings()
    print("=" * 60)
    print(f"  {settings.app_name} {settings.app_version}")
    print("=" * 60)
    print(f"  Server   : http://{HOST}:{PORT}")
    print(f"  API docs : http://{HOST}:{PORT}/docs")
    print(f"  Calendars: {settings.calendar_provider}")
    print("=" * 60)
    print("  Press CTRL+C to stop\n")

    # Blocks until CTRL+C
    uvicorn.run(
        "app:app",
        host=HOST,
        port=PORT,
        reload=True,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
