"""
Template loader utility for managing externalized prompts.

Prompt text ships as package data under ``support_chat/prompts`` so the
persona can be edited without touching code.
"""

import logging
from pathlib import Path

logger = logging.getLogger(__name__)

# Global cache for loaded templates
_template_cache: dict[str, str] = {}


def get_prompts_root() -> Path:
    """Get the root prompts directory path."""
    # src/support_chat/utils/template_loader.py -> src/support_chat/prompts
    prompts_root = Path(__file__).parent.parent / "prompts"

    if not prompts_root.exists():
        raise FileNotFoundError(f"Prompts directory not found: {prompts_root}")

    return prompts_root


def load_template(category: str, template_name: str, use_cache: bool = True) -> str:
    """
    Load a template from the prompts directory.

    Args:
        category: The category subdirectory (e.g. "system")
        template_name: The template file name (without .txt extension)
        use_cache: Whether to use cached templates

    Returns:
        The template content as a string

    Raises:
        FileNotFoundError: If the template file doesn't exist
        OSError: If there's an error reading the file
    """
    cache_key = f"{category}/{template_name}"

    if use_cache and cache_key in _template_cache:
        return _template_cache[cache_key]

    template_path = get_prompts_root() / category / f"{template_name}.txt"

    if not template_path.exists():
        available = ", ".join(list_available_templates(category)) or "none"
        raise FileNotFoundError(
            f"Template not found: {template_path} (available in '{category}': {available})"
        )

    try:
        with open(template_path, encoding="utf-8") as f:
            content = f.read().strip()
    except OSError as e:
        logger.error(f"Error reading template {template_path}: {e}")
        raise

    if use_cache:
        _template_cache[cache_key] = content

    logger.debug(f"Loaded template: {cache_key} ({len(content)} chars)")
    return content


def list_available_templates(category: str) -> list[str]:
    """List template names (without .txt extension) in a category."""
    category_path = get_prompts_root() / category
    if not category_path.exists():
        return []

    return sorted(
        str(item.relative_to(category_path)).removesuffix(".txt")
        for item in category_path.rglob("*.txt")
    )


def clear_template_cache() -> None:
    """Clear the template cache. Useful for testing or reloading templates."""
    _template_cache.clear()


def load_system_template(template_name: str) -> str:
    """Load a system template."""
    return load_template("system", template_name)
