"""Prompt template loading with {{VARIABLE}} hydration."""

import logging
from pathlib import Path
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

PACKAGE_DIR = Path(__file__).parent


class PromptManager:
    """Load markdown prompt templates and fill in context variables."""

    def __init__(self, base_dir: Optional[Path] = None):
        self.base_dir = Path(base_dir) if base_dir else PACKAGE_DIR
        self._cache: Dict[str, str] = {}

    def _resolve(self, prompt_file: str) -> Path:
        """Find a template relative to the cwd first, then the package."""
        path = Path(prompt_file)
        if path.exists():
            return path
        for candidate in (self.base_dir / path, self.base_dir.parent / path):
            if candidate.exists():
                return candidate
        raise FileNotFoundError(f"Prompt file not found: {prompt_file}")

    def load_prompt(self, prompt_file: str, context: Optional[Dict[str, Any]] = None) -> str:
        """Return the template with each {{KEY}} replaced by context[key]."""
        if prompt_file not in self._cache:
            self._cache[prompt_file] = self._resolve(prompt_file).read_text(encoding="utf-8")
        prompt = self._cache[prompt_file]

        for key, value in (context or {}).items():
            prompt = prompt.replace("{{" + key.upper() + "}}", str(value))

        if "{{" in prompt:
            logger.debug(f"Prompt {prompt_file} still has unfilled variables")
        return prompt
