"""
Behavior prompts and greetings for the assistant.

Supports scenario-based configuration:
- A behavior prompt (system instructions) per scenario
- A fixed greeting spoken once when the assistant starts
- Scenario selection via explicit name or the BEHAVIOR_PROMPT env var

Scenarios are stored as YAML (preferred) or JSON. PyYAML's safe_load parses
both, so there is a single loading path.
"""

import os
from pathlib import Path
from typing import Optional, Dict, Any

import yaml

from .models import BehaviorPrompt


DEFAULT_PROMPT = """
You are a friendly voice assistant. Your replies are spoken aloud.

- Answer in one to three short sentences.
- Use plain conversational language, no lists, markdown or code.
- If the request is unclear, ask one short clarifying question.
- If you do not know something, say so.
""".strip()

DEFAULT_GREETING = "Hi, what can I do for you?"


def _get_scenarios_dir() -> Path:
    return Path(__file__).parent / "scenarios"


def _load_file(path: Path) -> Dict[str, Any]:
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f)
        if not isinstance(data, dict):
            raise ValueError(f"Scenario file {path} must contain a mapping at top-level")
        return data


def load_scenario(scenario_name: str) -> Dict[str, Any]:
    """
    Load scenario configuration from YAML or JSON file.

    Resolution order:
    1) <name>.yaml
    2) <name>.yml
    3) <name>.json
    4) default.yaml / default.yml / default.json
    5) hardcoded default fallback
    """
    scenarios_dir = _get_scenarios_dir()

    for name in (scenario_name, "default"):
        for suffix in (".yaml", ".yml", ".json"):
            candidate = scenarios_dir / f"{name}{suffix}"
            if candidate.exists():
                return _load_file(candidate)

    return {
        "name": "default",
        "prompt": DEFAULT_PROMPT,
        "greeting_text": DEFAULT_GREETING,
    }


def get_scenario(name: Optional[str] = None) -> Dict[str, Any]:
    """
    Get scenario configuration.

    Priority:
    1. name parameter
    2. BEHAVIOR_PROMPT environment variable
    3. "default"
    """
    scenario_name = name or os.getenv("BEHAVIOR_PROMPT", "default")
    return load_scenario(scenario_name)


def get_behavior_prompt(name: Optional[str] = None, custom_instructions: Optional[str] = None) -> BehaviorPrompt:
    """
    Build the BehaviorPrompt for a scenario.

    Args:
        name: Scenario name
        custom_instructions: Optional extra instructions appended to the prompt
    """
    scenario = get_scenario(name)
    text = str(scenario.get("prompt") or DEFAULT_PROMPT).strip()

    if custom_instructions:
        text = f"{text}\n\n{custom_instructions}"
    return BehaviorPrompt(text=text, name=scenario.get("name", name or "default"))


def get_greeting_text(name: Optional[str] = None) -> str:
    """Greeting spoken once before the first listening phase."""
    scenario = get_scenario(name)
    return scenario.get("greeting_text", DEFAULT_GREETING)
