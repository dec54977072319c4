"""
Entry point for running the panel via `python -m rathole_panel`.

Starts the FastAPI server with uvicorn.
"""

import uvicorn

from .config import HOST, PORT


def main():
    """Run the panel server."""
    uvicorn.run(
        "rathole_panel.main:app",
        host=HOST,
        port=PORT,
        reload=False,
    )


if __name__ == "__main__":
    main()
