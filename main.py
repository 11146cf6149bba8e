"""
main.py: Server launcher and entry point.

Run this file to start the placement optimizer API:

    python main.py

Interactive API docs are served at http://127.0.0.1:8000/docs

This file does NOT contain application logic. See app.py for the FastAPI
application and service wiring.

Direct uvicorn usage:
    uvicorn app:app --reload
"""

from __future__ import annotations

import os

import uvicorn


HOST = os.getenv("VMP_HOST", "127.0.0.1")
PORT = int(os.getenv("VMP_PORT", "8000"))


def main() -> None:
    """Start the placement optimizer server."""
    print("=" * 60)
    print("  VM Placement Optimizer - Hippopotamus Optimization")
    print("=" * 60)
    print(f"  Server  : http://{HOST}:{PORT}")
    print(f"  API docs: http://{HOST}:{PORT}/docs")
    print("=" * 60)
    print("  Press CTRL+C to stop\n")

    # Blocks until CTRL+C
    uvicorn.run(
        "app:app",
        host=HOST,
        port=PORT,
        reload=False,
        log_level="info",
    )


if __name__ == "__main__":
    main()
