"""Tests for template loader utilities."""

from pathlib import Path
from unittest.mock import patch

import pytest

from support_chat.utils.template_loader import (
    _template_cache,
    clear_template_cache,
    get_prompts_root,
    list_available_templates,
    load_system_template,
    load_template,
)


class TestTemplateLoader:
    """Test template loading functionality."""

    def test_get_prompts_root(self):
        root = get_prompts_root()
        assert isinstance(root, Path)
        assert root.name == "prompts"
        assert (root / "system").is_dir()

    def test_get_prompts_root_not_found(self):
        with patch("pathlib.Path.exists", return_value=False):
            with pytest.raises(FileNotFoundError, match="Prompts directory not found"):
                get_prompts_root()

    def test_load_support_agent_prompt(self):
        content = load_system_template("support_agent")

        assert content.startswith("You are Spur Bot")
        assert content == content.strip()

    def test_template_cached(self):
        load_template("system", "support_agent")
        assert "system/support_agent" in _template_cache

        clear_template_cache()
        assert _template_cache == {}

    def test_no_cache(self):
        load_template("system", "support_agent", use_cache=False)
        assert "system/support_agent" not in _template_cache

    def test_missing_template_lists_available(self):
        with pytest.raises(FileNotFoundError, match="support_agent"):
            load_template("system", "does_not_exist")

    def test_list_available_templates(self):
        assert "support_agent" in list_available_templates("system")
        assert list_available_templates("no_such_category") == []
