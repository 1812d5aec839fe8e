#!/usr/bin/env python3
"""
AdvisorBoard Mission Runner

Main entry point for running an advisory mission with:
- Configured inference provider (Gemini, OpenAI, Anthropic or local Ollama)
- The five autonomous stage agents
- Either a single mission from the command line or the HTTP API

Usage:
    python -m advisorboard.run_mission
    python -m advisorboard.run_mission --provider ollama --market tw
    python -m advisorboard.run_mission --answers answers.json
    python -m advisorboard.run_mission --serve --port 8000

Environment:
    Reads .env for API keys (GEMINI_API_KEY, OPENAI_API_KEY, ANTHROPIC_API_KEY)
"""

import argparse
import asyncio
import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

# Load environment variables before any other imports
from dotenv import load_dotenv

PROJECT_ROOT = Path(__file__).parent.parent
ENV_FILE = PROJECT_ROOT / ".env"
if ENV_FILE.exists():
    load_dotenv(ENV_FILE)

sys.path.insert(0, str(PROJECT_ROOT))

from advisorboard.src.agents import EducationTutor, create_stage_agents
from advisorboard.src.llm import InferenceService, PromptBuilder, create_llm_client
from advisorboard.src.orchestration import MissionController, MissionState, OrchestrationFault, Orchestrator
from advisorboard.src.utils.config import ConfigError, ConfigLoader

logger = logging.getLogger("advisorboard.run_mission")

LOGS_DIR = PROJECT_ROOT / 'logs'


def setup_logging(level: str = "INFO") -> None:
    """Log to the console and to logs/mission.log."""
    LOGS_DIR.mkdir(exist_ok=True)
    logging.basicConfig(
        level=getattr(logging, level),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(),
            logging.FileHandler(LOGS_DIR / 'mission.log', mode='a'),
        ]
    )


def print_banner(provider: str) -> None:
    """Print startup banner."""
    print()
    print("=" * 60)
    print("  AdvisorBoard")
    print("  Autonomous Multi-Agent Investment Advisory")
    print("=" * 60)
    print(f"  Provider: {provider}")
    print(f"  Started: {datetime.now(timezone.utc).strftime('%Y-%m-%d %H:%M:%S UTC')}")
    print("=" * 60)
    print()


def load_configs(config_dir: Path) -> dict:
    """Load every config file the system needs."""
    loader = ConfigLoader(config_dir)
    return {
        'agents': loader.get_agents_config(),
        'orchestration': loader.get_orchestration_config(),
        'prompts': loader.get_prompts_config(),
        'questionnaire': loader.get_questionnaire_config(),
    }


def build_system(
    configs: dict,
    provider: Optional[str] = None,
) -> tuple[MissionController, EducationTutor, InferenceService]:
    """
    Wire the inference client, agents, orchestrator and controller.

    Args:
        configs: Output of load_configs()
        provider: Provider name overriding agents.default_provider

    Returns:
        Tuple of (controller, tutor, inference service)
    """
    agents_config = configs['agents']
    provider = provider or agents_config['default_provider']
    provider_config = (agents_config.get('providers') or {}).get(provider)
    if provider_config is None:
        raise ConfigError(f"Provider '{provider}' is not configured")

    client = create_llm_client(provider, provider_config)
    inference = InferenceService(client, agents_config.get('inference', {}))
    prompt_builder = PromptBuilder(configs['prompts'])

    stage_configs = {
        stage_id: dict(stage or {})
        for stage_id, stage in (agents_config.get('stages') or {}).items()
    }
    orchestration_config = configs.get('orchestration', {})
    years = orchestration_config.get('simulation', {}).get('years')
    if years is not None:
        stage_configs.setdefault('simulation', {})['years'] = years

    questionnaire = configs.get('questionnaire')
    agents = create_stage_agents(inference, prompt_builder, stage_configs, questionnaire=questionnaire)
    orchestrator = Orchestrator(agents, orchestration_config)
    controller = MissionController(orchestrator, questionnaire)
    tutor = EducationTutor(inference, prompt_builder, stage_configs.get('education'))

    logger.info(f"Built system with {len(agents)} agents on provider {provider}")
    return controller, tutor, inference


def load_answers(args: argparse.Namespace, questionnaire: dict) -> dict:
    """Mission inputs from --answers or the questionnaire's sample answers."""
    if args.answers:
        with open(args.answers, 'r', encoding='utf-8') as f:
            data = json.load(f)
        if 'answers' not in data:
            data = {'answers': data}
    else:
        data = {'answers': dict(questionnaire.get('sample_answers', {}))}
    if args.market:
        data['market'] = args.market
    return data


async def run_mission(controller: MissionController, inference: InferenceService, inputs: dict) -> int:
    """Run one mission to the end and print the outcome."""
    orchestrator = controller.orchestrator
    try:
        mission_id = await controller.start_mission(inputs)
    except ValueError as e:
        print(f"  ✗ Invalid mission inputs: {e}")
        return 2
    except OrchestrationFault as e:
        logger.error(f"Mission aborted: {e}")
        return 1
    finally:
        await inference.client.close()

    print()
    print(f"Mission {mission_id}: {orchestrator.state.value}")
    for message in orchestrator.message_log():
        print(f"  [{message.kind.value:>16}] {message.sender:>16}: {message.summary}")
    print()

    snapshot = orchestrator.current_blackboard()
    if snapshot.report:
        print(snapshot.report)

    return 0 if orchestrator.state == MissionState.COMPLETED else 1


def serve(controller: MissionController, tutor: EducationTutor, inference: InferenceService,
          host: str, port: int) -> int:
    """Serve the HTTP API."""
    import uvicorn
    from advisorboard.src.api import create_app

    app = create_app(controller, tutor=tutor, inference=inference)
    uvicorn.run(app, host=host, port=port)
    return 0


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description='AdvisorBoard mission runner')
    parser.add_argument('--config-dir', type=str, default=str(PROJECT_ROOT / 'config'),
                        help='Directory holding the YAML configs')
    parser.add_argument('--provider', type=str, default=None,
                        choices=['gemini', 'openai', 'anthropic', 'ollama'],
                        help='Inference provider (default: agents.default_provider)')
    parser.add_argument('--answers', type=str, default=None,
                        help='JSON file with questionnaire answers')
    parser.add_argument('--market', type=str, default=None, choices=['tw', 'us', 'both'],
                        help='Market preference')
    parser.add_argument('--serve', action='store_true',
                        help='Serve the HTTP API instead of running one mission')
    parser.add_argument('--host', type=str, default='127.0.0.1')
    parser.add_argument('--port', type=int, default=8000)
    parser.add_argument('--log-level', type=str, default='INFO',
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
                        help='Logging level')
    return parser.parse_args(argv)


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point."""
    args = parse_args(argv)
    setup_logging(args.log_level)

    try:
        configs = load_configs(Path(args.config_dir))
        controller, tutor, inference = build_system(configs, args.provider)
    except (ConfigError, ValueError) as e:
        logger.error(f"Startup failed: {e}")
        print(f"  ✗ Startup failed: {e}")
        return 1

    print_banner(inference.client.provider_name)

    if args.serve:
        return serve(controller, tutor, inference, args.host, args.port)

    inputs = load_answers(args, configs['questionnaire'])
    return asyncio.run(run_mission(controller, inference, inputs))


if __name__ == "__main__":
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        print("\nInterrupted by user")
        sys.exit(130)
