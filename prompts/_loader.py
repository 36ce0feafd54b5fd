"""
Prompt Loader - Load and format prompts from markdown files.

1. Prompts are stored as .md files for easy editing
2. Variables use {variable_name} syntax (literal braces are doubled)
3. Templates are cached after the first read
"""

from pathlib import Path
from typing import Optional, Dict, Any

from loguru import logger


class PromptLoader:
    """
    Load and format prompts from markdown files.

    Prompts are stored in the same directory as this module.
    Each prompt is a .md file with placeholders like {variable_name}.

    Example:
        loader = PromptLoader()
        prompt = loader.format("unified_analysis",
            opinions_section="...",
            topics_section="...",
        )
    """

    # Singleton instance
    _instance: Optional["PromptLoader"] = None

    def __new__(cls) -> "PromptLoader":
        """Singleton pattern - only one loader instance needed."""
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._initialized = False
        return cls._instance

    def __init__(self):
        if self._initialized:
            return

        self._prompts_dir = Path(__file__).parent
        self._cache: Dict[str, str] = {}
        self._initialized = True

        logger.debug(f"PromptLoader initialized with prompts dir: {self._prompts_dir}")

    def get(self, prompt_name: str) -> str:
        """
        Get a prompt template by name.

        Args:
            prompt_name: Name of the prompt (without .md extension)

        Raises:
            FileNotFoundError: If prompt file doesn't exist
        """
        if prompt_name in self._cache:
            return self._cache[prompt_name]

        prompt_path = self._prompts_dir / f"{prompt_name}.md"

        if not prompt_path.exists():
            raise FileNotFoundError(
                f"Prompt file not found: {prompt_path}\n"
                f"Available prompts: {self.list_prompts()}"
            )

        content = prompt_path.read_text(encoding="utf-8")
        self._cache[prompt_name] = content

        logger.debug(f"Loaded prompt: {prompt_name} ({len(content)} chars)")
        return content

    def format(self, prompt_name: str, **kwargs: Any) -> str:
        """
        Get a prompt and format it with variables.

        Raises:
            ValueError: If a variable used by the template is not provided
        """
        template = self.get(prompt_name)

        try:
            return template.format(**kwargs)
        except KeyError as e:
            logger.error(f"Missing variable in prompt '{prompt_name}': {e}")
            logger.debug(f"Provided variables: {list(kwargs.keys())}")
            raise ValueError(
                f"Missing required variable {e} for prompt '{prompt_name}'"
            ) from e

    def list_prompts(self) -> list[str]:
        """List all available prompt names (without .md extension)."""
        return sorted(
            f.stem for f in self._prompts_dir.glob("*.md")
            if f.stem != "README"
        )
