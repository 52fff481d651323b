"""Global pytest configuration."""

import os

# Tests never call the real API; the factory falls back to the stub client
os.environ.pop("OPENAI_API_KEY", None)
