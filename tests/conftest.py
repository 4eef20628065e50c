import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest


# Ensure local src/ package imports work without editable install.
ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))


# =============================================================================
# Pytest Configuration
# =============================================================================

def pytest_configure(config):
    """
    Configure custom pytest markers.

    This function is called by pytest at startup to register custom markers.
    """
    config.addinivalue_line(
        "markers",
        "integration: tests that run the full service against a temp data dir"
    )
    config.addinivalue_line(
        "markers",
        "slow: mark test as slow-running (use pytest -m 'not slow' to skip)"
    )


def pytest_addoption(parser):
    """Add custom command-line options for pytest."""
    parser.addoption(
        "--run-slow",
        action="store_true",
        default=False,
        help="Run slow tests"
    )


def pytest_collection_modifyitems(config, items):
    """Skip slow tests unless --run-slow flag is passed."""
    if config.getoption("--run-slow", default=False):
        return
    skip_slow = pytest.mark.skip(reason="Slow test skipped. Use --run-slow to run.")
    for item in items:
        if "slow" in item.keywords:
            item.add_marker(skip_slow)


# =============================================================================
# Shared Fixtures
# =============================================================================

@pytest.fixture(autouse=True)
def clean_config():
    """Reset config state between tests."""
    from contextgraph.core.config import reset_config
    reset_config()
    yield
    reset_config()


@pytest.fixture
def temp_test_dir(tmp_path) -> Path:
    """A clean data directory per test."""
    test_dir = tmp_path / "contextgraph_test_data"
    test_dir.mkdir(parents=True, exist_ok=True)
    return test_dir


@pytest.fixture
def now() -> datetime:
    """A fixed 'current time' for decay and recency tests."""
    return datetime(2025, 6, 1, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def test_config(temp_test_dir):
    """Default config with paths under the temp dir and a short consolidation delay."""
    from contextgraph.core.config import ConsolidationConfig, ContextGraphConfig, PathsConfig

    return ContextGraphConfig(
        consolidation=ConsolidationConfig(delay_seconds=0.01, timeout_seconds=5.0),
        paths=PathsConfig(
            data_dir=str(temp_test_dir),
            graph_file=str(temp_test_dir / "graph.json"),
            type_registry_file=str(temp_test_dir / "type-registry.json"),
        ),
    )


@pytest.fixture
def store():
    from contextgraph.core.graph_store import GraphStore
    return GraphStore()


@pytest.fixture
def registry(temp_test_dir):
    from contextgraph.core.type_registry import TypeRegistry
    return TypeRegistry(temp_test_dir / "type-registry.json")


@pytest.fixture
def service(test_config):
    from contextgraph.core.service import ContextGraphService
    return ContextGraphService.from_config(test_config)
