"""
Development entry point for the learnloop REST API.

Run with:
    python main.py                 # API + recompute worker, auto-reload
    uvicorn main:app --port 8100   # app object only

For production use `learnloop serve`.
"""
import sys
from pathlib import Path

# Project root holds config.py and the src package
sys.path.insert(0, str(Path(__file__).parent))

import uvicorn
from loguru import logger

from config import get_settings
from src.api.main import app

settings = get_settings()

if __name__ == "__main__":
    store = "memory" if settings.use_memory_store else settings.database_url
    logger.info(f"learnloop dev server: store={store}, scheduler_enabled={settings.scheduler_enabled}")
    uvicorn.run(
        "src.api.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=True,
        log_level=settings.log_level.lower(),
    )
