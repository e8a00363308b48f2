"""Style prompt catalog."""

from .catalog import PromptCatalog, prompt_display_name

__all__ = ["PromptCatalog", "prompt_display_name"]
