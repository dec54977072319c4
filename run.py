"""Run the rathole panel service."""

import uvicorn

from rathole_panel.config import config

if __name__ == "__main__":
    uvicorn.run(
        "rathole_panel.main:app",
        host=config.host,
        port=config.port,
        reload=False,
    )
