from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Tuple

BASE_DIR = Path(__file__).resolve().parent


@dataclass(frozen=True)
class Settings:
    """Configuration container for the LLM, storage paths, and session limits."""
    gemini_api_key: str
    gemini_model: str
    data_dir: Path
    products_seed_path: Path
    prompts_dir: Path
    llm_timeout_sec: float
    session_ttl_sec: int
    max_sessions: int
    history_window: int
    prompt_history_turns: int
    cors_origins: Tuple[str, ...]


def load_settings() -> Settings:
    """Purpose: Build Settings from the process environment.
    Inputs/Outputs: Reads GEMINI_*, DATA_DIR, PRODUCTS_SEED_PATH, timeout, session
        and CORS variables; returns a frozen Settings.
    Side Effects / State: None beyond reading the environment.
    Dependencies: os.getenv; package-relative defaults under BASE_DIR.
    Failure Modes: Invalid numeric env values raise ValueError.
    If Removed: App cannot locate its data, prompts, or LLM credentials.
    Testing Notes: monkeypatch env vars, then compare fields against defaults.
    """
    # Resolve data and seed paths, then build Settings.
    data_dir = os.getenv("DATA_DIR")
    data_path = Path(data_dir) if data_dir else (BASE_DIR / "data").resolve()

    seed_path = os.getenv("PRODUCTS_SEED_PATH")
    seed_file = Path(seed_path) if seed_path else (BASE_DIR / "data" / "products.json").resolve()

    origins = os.getenv("CORS_ORIGINS", "http://localhost:5000,https://voiceassist1.netlify.app")

    return Settings(
        gemini_api_key=os.getenv("GEMINI_API_KEY", ""),
        gemini_model=os.getenv("GEMINI_MODEL", "gemini-2.5-flash"),
        data_dir=data_path,
        products_seed_path=seed_file,
        prompts_dir=(BASE_DIR / "prompts").resolve(),
        llm_timeout_sec=float(os.getenv("LLM_TIMEOUT_SEC", "10")),
        session_ttl_sec=int(os.getenv("SESSION_TTL_SEC", "1800")),
        max_sessions=int(os.getenv("MAX_SESSIONS", "1000")),
        history_window=int(os.getenv("HISTORY_WINDOW", "10")),
        prompt_history_turns=int(os.getenv("PROMPT_HISTORY_TURNS", "4")),
        cors_origins=tuple(origin.strip() for origin in origins.split(",") if origin.strip()),
    )
