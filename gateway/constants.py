from __future__ import annotations

import logging

LOGGER = logging.getLogger("gateway_client")
APP_VERSION = "0.1.0"
CLIENT_NAME = "Gateway Python Client"

DEFAULT_GATEWAY_ENDPOINT = "prod-sg.eu-central-1.shapediver.com"
DEFAULT_REDIRECT_URI = "http://localhost:8765/"
DEFAULT_CREDENTIALS_PATH = ".credentials.json"

# the gateway sends a status command every 30 seconds while a user is active
LIVENESS_WINDOW_SECONDS = 35.0
