"""
Configuration constants and environment setup.
"""

import os

from dotenv import load_dotenv

from . import __version__

load_dotenv()

# =============================================================================
# LLM CONFIGURATION
# =============================================================================

# Any OpenAI-compatible chat completions endpoint works; Gemini exposes one.
LLM_URL = os.environ.get(
    "LLM_URL",
    "https://generativelanguage.googleapis.com/v1beta/openai/chat/completions",
)
LLM_MODEL = os.environ.get("LLM_MODEL", "gemini-2.0-flash")
LLM_API_KEY = os.environ.get("LLM_API_KEY", os.environ.get("GEMINI_API_KEY", ""))
LLM_TIMEOUT = float(os.environ.get("LLM_TIMEOUT", "60"))

# =============================================================================
# SERVER CONFIGURATION
# =============================================================================

SERVER_HOST = os.environ.get("SERVER_HOST", "0.0.0.0")
SERVER_PORT = int(os.environ.get("SERVER_PORT", "9002"))
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()
APP_VERSION = __version__
