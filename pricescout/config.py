from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent

DEFAULT_GATEWAY_URL = "https://ai.gateway.lovable.dev/v1/chat/completions"
DEFAULT_MODEL = "google/gemini-2.5-flash"


@dataclass(frozen=True)
class Settings:
    """Configuration container for the AI gateway, auth service, and runtime limits."""
    gateway_api_key: str
    gateway_url: str
    model: str
    auth_url: str
    auth_anon_key: str
    prompts_dir: Path
    http_timeout: float
    max_sessions: int


def load_settings() -> Settings:
    """Purpose: Load configuration from environment variables and defaults.
    Inputs/Outputs: No inputs; returns a Settings instance.
    Side Effects / State: Reads environment variables.
    Dependencies: Uses os.getenv and BASE_DIR for the prompts directory.
    Failure Modes: Invalid HTTP_TIMEOUT/MAX_SESSIONS env values raise ValueError.
        Missing keys are returned as empty strings and rejected where they are used.
    If Removed: The API cannot reach the gateway or the auth service.
    Testing Notes: Verify defaults, overrides, and the LOVABLE_/SUPABASE_ fallbacks.
    """
    # Prefer the generic names, fall back to the hosted-platform names.
    return Settings(
        gateway_api_key=os.getenv("AI_GATEWAY_API_KEY") or os.getenv("LOVABLE_API_KEY", ""),
        gateway_url=os.getenv("AI_GATEWAY_URL", DEFAULT_GATEWAY_URL),
        model=os.getenv("AI_MODEL", DEFAULT_MODEL),
        auth_url=(os.getenv("AUTH_URL") or os.getenv("SUPABASE_URL", "")).rstrip("/"),
        auth_anon_key=os.getenv("AUTH_ANON_KEY") or os.getenv("SUPABASE_ANON_KEY", ""),
        prompts_dir=(BASE_DIR / "prompts").resolve(),
        http_timeout=float(os.getenv("HTTP_TIMEOUT", "60")),
        max_sessions=int(os.getenv("MAX_SESSIONS", "100")),
    )
