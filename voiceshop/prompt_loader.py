from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Dict


@lru_cache(maxsize=16)
def load_prompt(prompt_path: Path) -> str:
    """Purpose: Load a prompt template as UTF-8 text and strip BOM if present.
    Inputs/Outputs: Input is a Path to the template file; output is the decoded string.
    Side Effects / State: Caches each template after the first read.
    Dependencies: Uses Path.read_text/read_bytes; used by the intent bridge.
    Failure Modes: UnicodeDecodeError triggers a tolerant decode that drops invalid
        bytes; a missing file raises FileNotFoundError.
    If Removed: The intent prompt cannot be built and every turn falls back.
    Testing Notes: Validate BOM stripping on a template saved with a BOM.
    """
    # Read as UTF-8 and fall back to a tolerant decode if needed.
    try:
        return prompt_path.read_text(encoding="utf-8").lstrip("\ufeff")
    except UnicodeDecodeError:
        raw = prompt_path.read_bytes()
        return raw.decode("utf-8", errors="ignore").lstrip("\ufeff")


def render_prompt(prompt_path: Path, values: Dict[str, str]) -> str:
    """Fill <<NAME>> placeholders in a template with the given values."""
    rendered = load_prompt(prompt_path)
    for name, value in values.items():
        rendered = rendered.replace(f"<<{name}>>", value)
    return rendered
