from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from string import Template


@lru_cache(maxsize=16)
def load_prompt(prompt_path: Path) -> Template:
    """Purpose: Load a prompt template file as UTF-8 text and strip BOM if present.
    Inputs/Outputs: Input is a Path to the template; output is a string.Template.
    Side Effects / State: Reads the filesystem once per path; results are cached.
    Dependencies: Used by normalizer.build_prompts for the per-mode system prompts.
    Failure Modes: Missing files raise FileNotFoundError; undecodable bytes are dropped.
    If Removed: System prompts cannot be built and every analysis fails.
    Testing Notes: Validate BOM-stripping and that $placeholders survive loading.
    """
    # Read as UTF-8 and fall back to a tolerant decode if needed.
    try:
        text = prompt_path.read_text(encoding="utf-8")
    except UnicodeDecodeError:
        text = prompt_path.read_bytes().decode("utf-8", errors="ignore")
    return Template(text.lstrip("\ufeff"))


def render_prompt(prompt_path: Path, **values: str) -> str:
    """Substitute ``values`` into the template at ``prompt_path``."""
    return load_prompt(prompt_path).substitute(**values).strip()
