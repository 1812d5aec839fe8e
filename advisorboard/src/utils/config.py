"""
Configuration loading for AdvisorBoard.

The config directory holds one YAML file per concern:

    agents.yaml         providers, default provider, per-stage model settings
    orchestration.yaml  cascade depth, simulation horizon
    prompts.yaml        prompt templates and token budgets
    questionnaire.yaml  the risk questionnaire

Values may reference the environment as ${VAR} or ${VAR:-default}. After
substitution, string scalars that look like numbers or booleans are
converted, since environment variables always arrive as text. Each known
file is checked against a small schema when loaded.
"""

import logging
import math
import os
import re
import threading
from pathlib import Path
from typing import Any, Callable, Optional

import yaml

logger = logging.getLogger(__name__)

KNOWN_PROVIDERS = frozenset({'ollama', 'openai', 'anthropic', 'gemini'})
STAGE_IDS = ('risk_profile', 'market_context', 'portfolio_design', 'simulation', 'report')

_ENV_REF = re.compile(r'\$\{([^}:]+)(?::-([^}]*))?\}')
_TRUE = frozenset({'true', 'yes', 'on'})
_FALSE = frozenset({'false', 'no', 'off'})
_NON_FINITE = frozenset({'inf', '-inf', 'nan', 'infinity', '-infinity'})


class ConfigError(Exception):
    """A config file is missing, unparseable or fails its schema."""


def expand_env(text: str) -> str:
    """Replace ${VAR} and ${VAR:-default} with environment values."""
    return _ENV_REF.sub(lambda m: os.environ.get(m.group(1), m.group(2) or ''), text)


def coerce_types(value: Any) -> Any:
    """Recursively turn numeric and boolean strings into real values."""
    if isinstance(value, dict):
        return {key: coerce_types(item) for key, item in value.items()}
    if isinstance(value, list):
        return [coerce_types(item) for item in value]
    if not isinstance(value, str):
        return value

    lowered = value.lower()
    if lowered in _TRUE:
        return True
    if lowered in _FALSE:
        return False
    if lowered in _NON_FINITE:
        return value
    try:
        return int(value) if lowered.lstrip('-').isdigit() else _finite_or_text(value)
    except ValueError:
        return value


def _finite_or_text(value: str) -> Any:
    number = float(value)
    return number if math.isfinite(number) else value


# -- schema checks -------------------------------------------------------------

def _check_agents(config: dict) -> None:
    providers = config.get('providers') or {}
    if not providers:
        raise ConfigError("No providers configured in agents config")
    unknown = sorted(set(providers) - KNOWN_PROVIDERS)
    if unknown:
        raise ConfigError(f"Unknown providers in agents config: {unknown}")
    default = config.get('default_provider')
    if default not in providers:
        raise ConfigError(f"default_provider '{default}' is not a configured provider")

    for stage_id, stage in (config.get('stages') or {}).items():
        if stage_id not in STAGE_IDS and stage_id != 'education':
            raise ConfigError(f"Unknown stage in agents config: {stage_id}")
        stage = stage or {}
        temperature = stage.get('temperature')
        if temperature is not None and (
            isinstance(temperature, bool)
            or not isinstance(temperature, (int, float))
            or not 0 <= temperature <= 2
        ):
            raise ConfigError(f"Invalid temperature for stage {stage_id}: {temperature}")
        max_tokens = stage.get('max_tokens')
        if max_tokens is not None and (
            isinstance(max_tokens, bool) or not isinstance(max_tokens, int) or max_tokens <= 0
        ):
            raise ConfigError(f"Invalid max_tokens for stage {stage_id}: {max_tokens}")


def _check_orchestration(config: dict) -> None:
    section = config.get('orchestration') or {}
    if not section:
        raise ConfigError("Missing orchestration section")
    depth = section.get('max_cascade_depth', 32)
    if not isinstance(depth, int) or depth <= 0:
        raise ConfigError("Invalid max_cascade_depth")
    years = (section.get('simulation') or {}).get('years', 10)
    if not isinstance(years, int) or not 1 <= years <= 50:
        raise ConfigError("Invalid simulation years (must be 1-50)")


def _check_prompts(config: dict) -> None:
    agents = config.get('agents') or {}
    if not agents:
        raise ConfigError("No agents configured in prompts config")
    budgets = config.get('token_budgets') or {}
    if not budgets:
        raise ConfigError("No token budgets configured")
    for name, agent in agents.items():
        budget = (agent or {}).get('budget', 'default')
        if budget not in budgets:
            raise ConfigError(f"Agent {name} uses unknown token budget '{budget}'")


def _check_questionnaire(config: dict) -> None:
    questions = config.get('questions') or []
    if not questions:
        raise ConfigError("No questions configured in questionnaire")
    seen: set[str] = set()
    for question in questions:
        qid = question.get('id')
        if not qid:
            raise ConfigError("Questionnaire entry missing id")
        if qid in seen:
            raise ConfigError(f"Duplicate question id: {qid}")
        seen.add(qid)
        if not question.get('text'):
            raise ConfigError(f"Question {qid} missing text")
        if question.get('free_text'):
            continue
        options = question.get('options') or []
        if not options or not all(o.get('value') and o.get('label') for o in options):
            raise ConfigError(f"Question {qid} needs options with value and label")


SCHEMA_CHECKS: dict[str, Callable[[dict], None]] = {
    'agents': _check_agents,
    'orchestration': _check_orchestration,
    'prompts': _check_prompts,
    'questionnaire': _check_questionnaire,
}


class ConfigLoader:
    """Loads and caches the YAML files of one config directory."""

    def __init__(self, config_dir: str | Path):
        self.config_dir = Path(config_dir)
        if not self.config_dir.exists():
            raise ConfigError(f"Config directory not found: {self.config_dir}")
        self._cache: dict[str, dict] = {}

    def load(self, config_name: str, validate: bool = True) -> dict:
        """
        Load <config_dir>/<config_name>.yaml.

        Raises:
            ConfigError: File missing, invalid YAML, not a mapping, or
                (with validate) failing its schema check
        """
        cached = self._cache.get(config_name)
        if cached is not None:
            return cached

        path = self.config_dir / f"{config_name}.yaml"
        if not path.exists():
            raise ConfigError(f"Config file not found: {path}")

        try:
            config = yaml.safe_load(expand_env(path.read_text(encoding='utf-8'))) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {path}: {e}") from e
        if not isinstance(config, dict):
            raise ConfigError(f"Config {config_name} must be a mapping at the top level")

        config = coerce_types(config)
        if validate and config_name in SCHEMA_CHECKS:
            SCHEMA_CHECKS[config_name](config)
            logger.debug(f"Config {config_name} passed validation")

        self._cache[config_name] = config
        logger.info(f"Loaded config: {config_name}")
        return config

    def load_all(self) -> dict[str, dict]:
        """Every *.yaml in the directory; invalid files are logged and skipped."""
        configs = {}
        for path in sorted(self.config_dir.glob("*.yaml")):
            try:
                configs[path.stem] = self.load(path.stem)
            except ConfigError as e:
                logger.warning(f"Failed to load {path.stem}: {e}")
        return configs

    def get_agents_config(self) -> dict:
        return self.load('agents')

    def get_orchestration_config(self) -> dict:
        return self.load('orchestration').get('orchestration', {})

    def get_prompts_config(self) -> dict:
        return self.load('prompts')

    def get_questionnaire_config(self) -> dict:
        return self.load('questionnaire')

    def clear_cache(self) -> None:
        self._cache.clear()


_loader: Optional[ConfigLoader] = None
_loader_lock = threading.Lock()

DEFAULT_CONFIG_DIR = Path(__file__).resolve().parents[3] / 'config'


def get_config_loader(config_dir: str | Path | None = None) -> ConfigLoader:
    """
    Process-wide ConfigLoader, created on first use.

    config_dir only matters on the first call (or after reset_config_loader);
    it defaults to the repository's config/ directory.
    """
    global _loader
    if _loader is None:
        with _loader_lock:
            if _loader is None:
                _loader = ConfigLoader(config_dir or DEFAULT_CONFIG_DIR)
    return _loader


def reset_config_loader() -> None:
    """Forget the process-wide loader."""
    global _loader
    with _loader_lock:
        _loader = None


def load_config(config_name: str) -> dict:
    return get_config_loader().load(config_name)
