"""Configuration constants and environment-driven settings.

Centralizes the protocol strings, timing values and backend connection
settings used across the package.
"""

import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, Field

# Tool response text synthesized when the user stops an in-flight tool call
INTERRUPTED_NOTICE = "Interrupted by the user to make a correction"

# Tool response text synthesized when the stream fails mid tool call
STREAM_FAILED_NOTICE = "The response stream failed before the tool completed"

# Title given to a session minted by a summary handoff
CONTINUED_TITLE_PREFIX = "Continued from "

# A finish notification is shown only after this much user inactivity
NOTIFY_AFTER_SECONDS = 60.0
FINISH_NOTIFICATION_TITLE = "The agent finished the task."
FINISH_NOTIFICATION_BODY = "Click here to expand."

# Transport defaults
DEFAULT_API_URL = "http://127.0.0.1:3000"
DEFAULT_REQUEST_TIMEOUT = 600.0  # Seconds of stream inactivity before giving up
DEFAULT_CONNECT_TIMEOUT = 10.0
SECRET_KEY_HEADER = "X-Secret-Key"

# Session id timestamp format used by the backend
SESSION_ID_FORMAT = "%Y%m%d_%H%M%S"


class Settings(BaseModel):
    """Backend connection and storage settings."""

    api_url: str = Field(default=DEFAULT_API_URL, description="Backend base URL")
    secret_key: str | None = Field(default=None, description="Value of the X-Secret-Key header")
    working_dir: str = Field(default_factory=os.getcwd)
    request_timeout: float = Field(default=DEFAULT_REQUEST_TIMEOUT, gt=0)
    log_level: str = Field(default="WARNING")
    store: str = Field(default="sqlite", description="Chat store backend: memory or sqlite")
    store_path: Path = Field(default=Path("~/.convoflow/chats.db").expanduser())


def load_settings(env_file: str | Path | None = None) -> Settings:
    """Build settings from the environment.

    Args:
        env_file: Optional .env file; the default lookup is used when None

    Environment variables:
        CONVOFLOW_API_URL: Backend base URL (default: http://127.0.0.1:3000)
        CONVOFLOW_SECRET_KEY: Shared secret sent with every request
        CONVOFLOW_WORKING_DIR: Working directory reported to the backend
        CONVOFLOW_REQUEST_TIMEOUT: Stream inactivity timeout in seconds
        CONVOFLOW_LOG_LEVEL: Logging level name (default: WARNING)
        CONVOFLOW_STORE: Chat store backend (default: sqlite)
        CONVOFLOW_STORE_PATH: SQLite database path
    """
    load_dotenv(env_file)

    values: dict[str, object] = {}
    mapping = {
        "CONVOFLOW_API_URL": "api_url",
        "CONVOFLOW_SECRET_KEY": "secret_key",
        "CONVOFLOW_WORKING_DIR": "working_dir",
        "CONVOFLOW_REQUEST_TIMEOUT": "request_timeout",
        "CONVOFLOW_LOG_LEVEL": "log_level",
        "CONVOFLOW_STORE": "store",
    }
    for env_name, field_name in mapping.items():
        value = os.getenv(env_name)
        if value:
            values[field_name] = value

    store_path = os.getenv("CONVOFLOW_STORE_PATH")
    if store_path:
        values["store_path"] = Path(store_path).expanduser()

    return Settings(**values)
