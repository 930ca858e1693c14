import os

HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", 8080))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FILE = os.getenv("LOG_FILE", None)

# Token derivation salt. Generated per process in app.py when unset.
CHAT_SECRET = os.getenv("CHAT_SECRET", None)

# Revoke username when session hasn't pinged in N seconds.
SESSION_EXPIRATION = int(os.getenv("SESSION_EXPIRATION", 5 * 60))

# Check session ping every N seconds.
SESSION_EXPIRATION_CHECK_FREQ = float(os.getenv("SESSION_EXPIRATION_CHECK_FREQ", 60))

# Separator for pre-hash token parts. Must never be a legal username character.
TOKEN_PART_SEP = "^"

USERNAME_PATTERN = r"^[0-9a-zA-Z._-]{3,}$"

CORS_ALLOW_ORIGINS = os.getenv("CORS_ALLOW_ORIGINS", "*").split(",")
