"""Constants used through the app."""

import os
from pathlib import Path

# Directories
_env_instance_dir = os.getenv("MOONSTORE_INSTANCE_DIR")
DEFAULT_INSTANCE_PATH = Path(_env_instance_dir) if _env_instance_dir else Path.cwd() / "instance"

# API
API_V1_STR = "/api/v1"

# Config
ENV_PREFIX = "MOONSTORE_"

# Time
MS_PER_SECOND = 1000
MS_PER_MINUTE = 60 * MS_PER_SECOND
MS_PER_DAY = 24 * 60 * MS_PER_MINUTE

# Storage defaults
DEFAULT_SESSION_TTL_SECONDS = 60 * 60
DEFAULT_API_LOG_CAP = 1000
DEFAULT_SEARCH_HISTORY_LIMIT = 20
DEFAULT_RETRY_ATTEMPTS = 3
DEFAULT_RETRY_BASE_DELAY = 1.0

# Presence, clients send a heartbeat roughly every 5 minutes
DEFAULT_PRESENCE_WINDOW_MINUTES = 30

# Headers set by the authenticating proxy in front of us
AUTH_USER_HEADER = "X-Auth-User"
AUTH_ROLE_HEADER = "X-Auth-Role"
SESSION_COOKIE_NAME = "sessionId"
