"""
Entrypoint.  Either `uvicorn main:app` or `python main.py`, which
binds to HOST / PORT from the settings.
"""

import uvicorn

from app.core.config import settings
from app.main import app

if __name__ == "__main__":
    uvicorn.run(app, host=settings.HOST, port=settings.PORT, log_level="debug" if settings.DEBUG else "info")
