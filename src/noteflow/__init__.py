"""
Noteflow: resilient LLM calls for a personal notes app.

Provides:
- Error classification for failed LLM/HTTP calls
- Retry with exponential backoff and jitter
- Friendly, localized messages for end users
"""

__version__ = "0.1.0"
