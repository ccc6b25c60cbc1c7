"""
Tests for Voice Pipeline behavior prompts and scenarios.
"""
import pytest

from voice_pipeline.instructions import (
    DEFAULT_GREETING,
    DEFAULT_PROMPT,
    get_behavior_prompt,
    get_greeting_text,
    get_scenario,
    load_scenario,
)
import voice_pipeline.instructions as instructions
from voice_pipeline.models import BehaviorPrompt


@pytest.fixture(autouse=True)
def no_scenario_env(monkeypatch):
    monkeypatch.delenv("BEHAVIOR_PROMPT", raising=False)


def test_default_scenario_exists():
    """Test that default scenario can be loaded."""
    scenario = load_scenario("default")
    assert scenario["name"] == "default"
    assert "prompt" in scenario
    assert len(scenario["greeting_text"]) > 0


def test_get_scenario_with_default():
    scenario = get_scenario()
    assert scenario["name"] == "default"


def test_get_scenario_by_name():
    scenario = get_scenario("concise")
    assert scenario["name"] == "concise"
    assert scenario["greeting_text"] == "Ready."


def test_get_scenario_with_env_var(monkeypatch):
    """Test that get_scenario uses BEHAVIOR_PROMPT env var."""
    monkeypatch.setenv("BEHAVIOR_PROMPT", "concise")
    assert get_scenario()["name"] == "concise"


def test_explicit_name_beats_env_var(monkeypatch):
    monkeypatch.setenv("BEHAVIOR_PROMPT", "concise")
    assert get_scenario("default")["name"] == "default"


def test_json_scenario_loads():
    scenario = load_scenario("tutor")
    assert scenario["name"] == "tutor"
    assert scenario["prompt"]


def test_unknown_scenario_falls_back_to_default():
    assert load_scenario("does-not-exist")["name"] == "default"


def test_hardcoded_fallback_when_no_files(monkeypatch, tmp_path):
    monkeypatch.setattr(instructions, "_get_scenarios_dir", lambda: tmp_path)

    scenario = load_scenario("anything")
    assert scenario["prompt"] == DEFAULT_PROMPT
    assert scenario["greeting_text"] == DEFAULT_GREETING


def test_yaml_preferred_over_json(monkeypatch, tmp_path):
    (tmp_path / "mine.json").write_text('{"name": "from-json", "prompt": "json"}')
    (tmp_path / "mine.yaml").write_text("name: from-yaml\nprompt: yaml\n")
    monkeypatch.setattr(instructions, "_get_scenarios_dir", lambda: tmp_path)

    assert load_scenario("mine")["name"] == "from-yaml"


def test_scenario_must_be_mapping(monkeypatch, tmp_path):
    (tmp_path / "broken.yaml").write_text("- just\n- a list\n")
    monkeypatch.setattr(instructions, "_get_scenarios_dir", lambda: tmp_path)

    with pytest.raises(ValueError, match="mapping"):
        load_scenario("broken")


def test_get_behavior_prompt_default():
    prompt = get_behavior_prompt()
    assert isinstance(prompt, BehaviorPrompt)
    assert prompt.name == "default"
    assert prompt.text.strip() == prompt.text
    assert len(prompt.text) > 0


def test_get_behavior_prompt_differs_per_scenario():
    assert get_behavior_prompt("concise").text != get_behavior_prompt("default").text


def test_get_behavior_prompt_with_custom_instructions():
    prompt = get_behavior_prompt("default", custom_instructions="Always answer in French.")
    assert prompt.text.endswith("Always answer in French.")
    assert prompt.text.startswith(get_behavior_prompt("default").text)


def test_get_greeting_text():
    assert get_greeting_text("concise") == "Ready."
    assert len(get_greeting_text()) > 0


def test_greeting_defaults_when_missing(monkeypatch, tmp_path):
    (tmp_path / "quiet.yaml").write_text("name: quiet\nprompt: Be quiet.\n")
    monkeypatch.setattr(instructions, "_get_scenarios_dir", lambda: tmp_path)

    assert get_greeting_text("quiet") == DEFAULT_GREETING
