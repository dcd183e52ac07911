"""
Property tests for configuration manager.
"""

from hypothesis import given, strategies as st
import pytest
import json
import yaml
from pathlib import Path

from aqforecast.utils.config_manager import ConfigManager

key_strategy = st.text(alphabet="abcdefghijklmnopqrstuvwxyz_", min_size=1, max_size=8)
leaf_strategy = st.one_of(st.none(), st.booleans(), st.integers(), st.text(max_size=10))

config_strategy = st.recursive(
    st.dictionaries(key_strategy, leaf_strategy, max_size=4),
    lambda children: st.dictionaries(key_strategy, children, max_size=3),
    max_leaves=10,
)

test_schema = {
    "type": "object",
    "properties": {
        "name": {"type": "string"},
        "count": {"type": "integer", "minimum": 0},
        "nested": {
            "type": "object",
            "properties": {
                "flag": {"type": "boolean"}
            }
        }
    },
    "required": ["name"]
}


@pytest.fixture
def config_env(tmp_path):
    """Temporary config and schema directories."""
    config_dir = tmp_path / "config"
    schema_dir = tmp_path / "schemas"
    config_dir.mkdir()
    schema_dir.mkdir()
    with open(schema_dir / "test_schema.json", "w") as f:
        json.dump(test_schema, f)
    return config_dir, schema_dir


def test_load_and_validate_valid_config(config_env):
    config_dir, schema_dir = config_env
    cm = ConfigManager(str(config_dir), str(schema_dir))
    with open(config_dir / "valid.yaml", "w") as f:
        yaml.dump({"name": "station", "count": 5, "nested": {"flag": True}}, f)

    loaded = cm.load_config("valid.yaml", "test_schema.json")
    assert loaded["count"] == 5


def test_validation_error_names_nested_path(config_env):
    config_dir, schema_dir = config_env
    cm = ConfigManager(str(config_dir), str(schema_dir))
    with open(config_dir / "invalid.yaml", "w") as f:
        yaml.dump({"name": "station", "nested": {"flag": "yes"}}, f)

    with pytest.raises(ValueError) as excinfo:
        cm.load_config("invalid.yaml", "test_schema.json")
    assert "nested -> flag" in str(excinfo.value)


def test_missing_config_file(config_env):
    config_dir, schema_dir = config_env
    cm = ConfigManager(str(config_dir), str(schema_dir))
    with pytest.raises(FileNotFoundError):
        cm.load_config("absent.yaml")


@given(config_strategy, config_strategy)
def test_merge_keeps_every_override_leaf(base, override):
    cm = ConfigManager()
    merged = cm.merge_configs(base, override)

    def leaves(config, prefix=""):
        for key, value in config.items():
            path = f"{prefix}.{key}" if prefix else key
            if isinstance(value, dict):
                # Empty dicts merge into whatever the base holds
                yield from leaves(value, path)
            else:
                yield path, value

    for path, value in leaves(override):
        assert cm.get_value(merged, path) == value


@given(config_strategy)
def test_merge_does_not_mutate_base(base):
    cm = ConfigManager()
    snapshot = json.dumps(base, sort_keys=True)
    cm.merge_configs(base, {"extra": {"value": 1}})
    assert json.dumps(base, sort_keys=True) == snapshot


@given(st.lists(key_strategy, min_size=1, max_size=4), leaf_strategy)
def test_set_then_get(keys, value):
    cm = ConfigManager()
    config = {}
    path = ".".join(keys)
    cm.set_value(config, path, value)
    assert cm.get_value(config, path) == value
