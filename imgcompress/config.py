"""Application configuration via environment variables."""

import os
import tempfile

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Storage
    data_dir: str = os.path.join(os.path.expanduser("~"), ".imgcompress")
    database_path: str = ""  # defaults to <data_dir>/jobs.db
    views_dir: str = os.path.join(tempfile.gettempdir(), "imgcompress_views")

    # Service
    log_level: str = "INFO"
    compute_port: int = 8001

    # Intake
    max_upload_bytes: int = 200 * 1024 * 1024

    # Encoding
    encoder_threads: int = 8

    model_config = {"env_prefix": "IMGCOMPRESS_", "env_file": ".env", "env_file_encoding": "utf-8"}

    def resolved_database_path(self) -> str:
        if self.database_path:
            return self.database_path
        return os.path.join(self.data_dir, "jobs.db")


settings = Settings()
