"""
Tests for YAML configuration loading and environment overrides.
"""

import pytest
import yaml

from contextgraph.core.config import (
    ContextGraphConfig,
    get_config,
    load_config,
    reset_config,
)
from contextgraph.core.exceptions import ConfigurationError


def _write(tmp_path, data):
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump(data))
    return path


class TestLoadConfig:
    def test_missing_file_gives_defaults(self, tmp_path):
        config = load_config(tmp_path / "missing.yaml")
        assert config == ContextGraphConfig()

    def test_yaml_values(self, tmp_path):
        path = _write(tmp_path, {"contextgraph": {
            "decay": {"node_stale_days": 14, "edge_stale_days": 3},
            "cooccurrence": {"promotion_threshold": 3},
            "observability": {"log_level": "DEBUG"},
        }})
        config = load_config(path)
        assert config.decay.node_stale_days == 14.0
        assert config.decay.edge_stale_days == 3.0
        assert config.cooccurrence.promotion_threshold == 3
        assert config.cooccurrence.ring_capacity == 50
        assert config.observability.log_level == "DEBUG"

    def test_data_dir_derives_file_paths(self, tmp_path):
        path = _write(tmp_path, {"contextgraph": {"paths": {"data_dir": "/var/lib/cg"}}})
        config = load_config(path)
        assert config.paths.graph_file == "/var/lib/cg/graph.json"
        assert config.paths.type_registry_file == "/var/lib/cg/type-registry.json"

    def test_env_overrides_yaml(self, tmp_path, monkeypatch):
        path = _write(tmp_path, {"contextgraph": {"decay": {"node_stale_days": 14}}})
        monkeypatch.setenv("CTXGRAPH_DECAY_NODE_STALE_DAYS", "21")
        monkeypatch.setenv("CTXGRAPH_CONSOLIDATION_ENABLED", "false")
        monkeypatch.setenv("CTXGRAPH_GRAPH_CONTEXT_CAPACITY", "25")
        config = load_config(path)
        assert config.decay.node_stale_days == 21.0
        assert config.consolidation.enabled is False
        assert config.graph.context_capacity == 25

    @pytest.mark.parametrize("section,values", [
        ("analytics", {"damping_factor": 1.5}),
        ("merge", {"similarity_threshold": 2}),
        ("cooccurrence", {"window_seconds": 0}),
        ("graph", {"context_capacity": -1}),
        ("consolidation", {"timeout_seconds": 0}),
    ])
    def test_invalid_values(self, tmp_path, section, values):
        path = _write(tmp_path, {"contextgraph": {section: values}})
        with pytest.raises(ConfigurationError):
            load_config(path)

    def test_non_mapping_file(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("- just\n- a list\n")
        with pytest.raises(ConfigurationError):
            load_config(path)

    def test_repository_config_matches_defaults(self):
        config = load_config()
        assert config.decay == ContextGraphConfig().decay
        assert config.cooccurrence == ContextGraphConfig().cooccurrence


class TestSingleton:
    def test_get_config_is_cached(self):
        assert get_config() is get_config()

    def test_reset_config(self):
        first = get_config()
        reset_config()
        assert get_config() is not first
