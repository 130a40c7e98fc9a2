"""Configuration management for tm2bd."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = {"env_prefix": "TM2BD_", "env_file": ".env", "env_file_encoding": "utf-8"}

    # Input / output
    tasks_path: str = ".taskmaster/tasks/tasks.json"
    project_path: str = "."
    map_file: str = "./tm2bd-map.json"
    save_partial: bool = False  # write the mapping file when a run fails

    # Beads CLI
    bd_command: str = "bd"
    bd_timeout: int = 120  # seconds per bd invocation

    # Logging
    log_level: str = "INFO"
