"""
Unit tests for the mission runner entry point.

Tests validate:
- System wiring from the shipped configuration
- Answer loading and argument parsing
- Exit codes of run_mission() and main()
"""

import json
import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from advisorboard import run_mission as runner
from advisorboard.src.agents import EducationTutor
from advisorboard.src.llm.clients import OllamaClient
from advisorboard.src.orchestration import MissionState, OrchestrationFault
from advisorboard.src.utils.config import ConfigError


@pytest.fixture
def configs(project_config_dir, monkeypatch):
    monkeypatch.delenv("ADVISORBOARD_PROVIDER", raising=False)
    return runner.load_configs(project_config_dir)


class TestBuildSystem:
    """Test build_system()."""

    def test_wires_five_stages(self, configs):
        controller, tutor, inference = runner.build_system(configs, 'ollama')

        agents = controller.orchestrator.agents
        assert [a.agent_id for a in agents] == [
            'risk_profile', 'market_context', 'portfolio_design', 'simulation', 'report',
        ]
        assert controller.orchestrator.get_agent('simulation').years == 10
        assert controller.orchestrator.state == MissionState.IDLE
        assert isinstance(inference.client, OllamaClient)
        assert isinstance(tutor, EducationTutor)
        assert controller.question_ids >= {'q1', 'q2', 'q3', 'q4', 'q5'}

    def test_unconfigured_provider(self, configs):
        del configs['agents']['providers']['openai']
        with pytest.raises(ConfigError, match="not configured"):
            runner.build_system(configs, 'openai')


class TestLoadAnswers:
    """Test load_answers()."""

    def test_sample_answers(self, configs):
        args = runner.parse_args([])
        data = runner.load_answers(args, configs['questionnaire'])
        assert data['answers']['q1'] == 'long'
        assert 'market' not in data

    def test_answers_file_and_market(self, configs, tmp_path):
        path = tmp_path / "answers.json"
        path.write_text(json.dumps({"q1": "short", "q2": "sell"}))
        args = runner.parse_args(['--answers', str(path), '--market', 'tw'])

        data = runner.load_answers(args, configs['questionnaire'])

        assert data == {'answers': {"q1": "short", "q2": "sell"}, 'market': 'tw'}

    def test_wrapped_answers_file(self, configs, tmp_path):
        path = tmp_path / "answers.json"
        path.write_text(json.dumps({"answers": {"q1": "medium"}, "market": "both"}))
        data = runner.load_answers(runner.parse_args(['--answers', str(path)]), configs['questionnaire'])
        assert data == {"answers": {"q1": "medium"}, "market": "both"}


class TestParseArgs:
    """Test parse_args()."""

    def test_defaults(self):
        args = runner.parse_args([])
        assert args.provider is None
        assert args.serve is False
        assert args.port == 8000
        assert args.log_level == 'INFO'

    def test_invalid_market(self):
        with pytest.raises(SystemExit):
            runner.parse_args(['--market', 'jp'])


class TestRunMission:
    """Test run_mission() exit codes."""

    @pytest.fixture
    def inference(self):
        inference = MagicMock()
        inference.client.close = AsyncMock()
        return inference

    def make_controller(self, state, error=None):
        controller = MagicMock()
        controller.start_mission = AsyncMock(return_value="m-1", side_effect=error)
        controller.orchestrator.state = state
        controller.orchestrator.message_log.return_value = []
        controller.orchestrator.current_blackboard.return_value.report = "# Report"
        return controller

    @pytest.mark.asyncio
    async def test_completed(self, inference, capsys):
        controller = self.make_controller(MissionState.COMPLETED)
        assert await runner.run_mission(controller, inference, {"answers": {}}) == 0
        assert "# Report" in capsys.readouterr().out
        inference.client.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_stalled(self, inference):
        controller = self.make_controller(MissionState.STALLED)
        assert await runner.run_mission(controller, inference, {"answers": {}}) == 1

    @pytest.mark.asyncio
    async def test_invalid_inputs(self, inference):
        controller = self.make_controller(MissionState.IDLE, ValueError("bad market"))
        assert await runner.run_mission(controller, inference, {"answers": {}}) == 2
        inference.client.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_fault(self, inference):
        controller = self.make_controller(MissionState.FAULTED, OrchestrationFault("too deep"))
        assert await runner.run_mission(controller, inference, {"answers": {}}) == 1


class TestMain:
    """Test main()."""

    def test_missing_config_dir(self, tmp_path):
        with patch.object(runner, 'setup_logging'):
            assert runner.main(['--config-dir', str(tmp_path / 'nope')]) == 1
