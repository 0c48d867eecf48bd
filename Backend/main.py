import logging
import os

from config.settings import Settings, settings as default_settings
from config.logging_config import setup_logging
from api.app import create_app

# ENV_FILE points at an alternative .env (e.g. .env.production)
env_file = os.getenv("ENV_FILE")
settings = Settings.from_env_file(env_file) if env_file else default_settings

setup_logging(settings.log_level, settings.log_file, debug=settings.debug_mode)

logger = logging.getLogger(__name__)

app = create_app(settings)

if __name__ == "__main__":
    import uvicorn
    logger.info(f"Starting chat backend (storage={settings.storage_backend}, model={settings.llm_model})")
    uvicorn.run(app, host="0.0.0.0", port=8000)
