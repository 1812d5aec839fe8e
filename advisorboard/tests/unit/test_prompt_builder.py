"""
Unit tests for the Prompt Builder.

Tests validate:
- Section assembly and task selection
- Template loading from a templates directory
- Token estimation and truncation
- Template validation, including the shipped templates
"""

import pytest

from advisorboard.src.llm.prompt_builder import AssembledPrompt, PromptBuilder
from advisorboard.src.utils.config import ConfigLoader


class TestBuildPrompt:
    """Test build_prompt()."""

    def test_sections_in_order(self, prompt_builder):
        prompt = prompt_builder.build_prompt("report", {
            "Risk Profile": {"score": 62, "level": "Growth"},
            "Market Context": "Neutral sentiment",
            "Skipped": None,
        })

        assert isinstance(prompt, AssembledPrompt)
        assert prompt.system_prompt == "You are an investment advisor."
        assert prompt.agent_name == "report"
        assert prompt.budget == "default"
        assert "Skipped" not in prompt.user_message
        risk_at = prompt.user_message.index("## Risk Profile")
        market_at = prompt.user_message.index("## Market Context\nNeutral sentiment")
        task_at = prompt.user_message.index("## Task\nWrite the final advisory report")
        assert risk_at < market_at < task_at
        assert '"score": 62' in prompt.user_message

    def test_custom_query(self, prompt_builder):
        prompt = prompt_builder.build_prompt("education", query="What is an ETF?")
        assert prompt.user_message == "## Task\nWhat is an ETF?"

    def test_configured_query(self, prompts_config):
        prompts_config['agents']['simulation']['query'] = "Project ten years."
        prompt = PromptBuilder(prompts_config).build_prompt("simulation")
        assert prompt.user_message.endswith("## Task\nProject ten years.")

    def test_unknown_agent(self, prompt_builder):
        with pytest.raises(ValueError, match="Unknown agent"):
            prompt_builder.build_prompt("trader")

    def test_minimal_prompt_without_template(self):
        builder = PromptBuilder({'agents': {'report': {}}, 'token_budgets': {}})
        assert "report agent" in builder.build_prompt("report").system_prompt

    def test_truncated_to_budget(self, prompts_config):
        prompts_config['token_budgets']['default'] = {'total': 300, 'buffer': 50}
        builder = PromptBuilder(prompts_config)

        prompt = builder.build_prompt("market_context", {"Headlines": "x" * 5000})

        assert prompt.user_message.endswith("... [truncated]")
        assert prompt.estimated_tokens <= 250


class TestTokens:
    """Test estimation and truncation helpers."""

    def test_estimate(self, prompt_builder):
        assert prompt_builder.estimate_tokens("") == 0
        assert prompt_builder.estimate_tokens("a" * 35) == 11

    def test_truncate(self, prompt_builder):
        assert prompt_builder.truncate_to_budget("short", 100) == "short"
        assert prompt_builder.truncate_to_budget("anything", 0) == ""
        truncated = prompt_builder.truncate_to_budget("y" * 1000, 50)
        assert prompt_builder.estimate_tokens(truncated) <= 50


class TestTemplates:
    """Test template loading and validation."""

    def test_loads_from_directory(self, tmp_path):
        (tmp_path / "risk.md").write_text(
            "You are a risk analyst. Return JSON with the risk score, level "
            "and any contradiction you notice."
        )
        builder = PromptBuilder({
            'templates_dir': str(tmp_path),
            'token_budgets': {'default': {'total': 8192, 'buffer': 1024}},
            'agents': {
                'risk_profile': {'template': 'risk.md', 'system_prompt': 'inline'},
                'report': {'template': 'missing.md'},
            },
        })

        assert builder.has_template("risk_profile")
        assert not builder.has_template("report")
        assert builder.build_prompt("risk_profile").system_prompt.startswith("You are a risk analyst.")

    def test_validation_errors(self, prompt_builder):
        result = prompt_builder._validate_template("portfolio_design", "Short text")
        assert result['valid'] is False
        assert any("too short" in e for e in result['errors'])
        assert any("role" in e for e in result['errors'])
        assert any("key concepts" in e for e in result['errors'])

    def test_project_templates_valid(self, project_config_dir):
        builder = PromptBuilder(ConfigLoader(project_config_dir).get_prompts_config())

        results = builder.validate_all_templates()

        assert set(results) == {
            'risk_profile', 'market_context', 'portfolio_design', 'simulation', 'report', 'education',
        }
        for agent_name, result in results.items():
            assert result['valid'], f"{agent_name}: {result['errors']}"
