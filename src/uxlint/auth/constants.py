"""Timeouts, limits, and storage keys used throughout the authentication core.

All durations are in seconds.
"""

# Hard ceiling on waiting for the browser redirect.
OAUTH_FLOW_TIMEOUT = 300.0

# Per-request ceiling for token, discovery, JWKS, and user-info calls.
HTTP_REQUEST_TIMEOUT = 30.0

# Sessions are refreshed this long before their actual expiry.
TOKEN_REFRESH_BUFFER = 300.0

MAX_PORT_RANGE_SIZE = 100
MAX_AUTH_CODE_LENGTH = 2048
MAX_STATE_LENGTH = 2048

DEFAULT_CALLBACK_PATH = "/callback"

KEYCHAIN_SERVICE = "uxlint-cli"
KEYCHAIN_ACCOUNT = "default"
