"""Shared fixtures for CLI command tests."""

import json
from unittest.mock import patch

import pytest
from click.testing import CliRunner

from hypoforge.cli.config import CLIContext
from hypoforge.config import ServerConfig
from hypoforge.config.orchestration import OrchestrationConfig
from hypoforge.core.runs.continuation import DeferredContinuationDispatcher
from hypoforge.core.runs.memory import RunStorage
from tests.unit.test_core.runs.conftest import FakeGateway


@pytest.fixture
def cli_runner():
    return CliRunner()


@pytest.fixture
def cli_context(tmp_path):
    """CLI context wired to a temp store, a fake gateway and a deferred dispatcher."""
    config = ServerConfig(
        storage_dir=tmp_path / "store",
        orchestration=OrchestrationConfig(
            poll_interval_seconds=0.0,
            structure_with_model=False,
            run_lock_timeout_seconds=0.05,
        ),
    )
    context = CLIContext(
        config,
        storage=RunStorage(tmp_path / "store"),
        gateway=FakeGateway(),
        dispatcher=DeferredContinuationDispatcher(),
    )
    with patch("hypoforge.cli.main.create_context", return_value=context):
        yield context


@pytest.fixture
def input_docs(tmp_path):
    """Write the two required input documents and return their paths."""
    spec = tmp_path / "target.md"
    spec.write_text("Target market: consumer hardware materials.", encoding="utf-8")
    assets = tmp_path / "assets.md"
    assets.write_text("Assets: thin-film deposition.", encoding="utf-8")
    return str(spec), str(assets)


def parse_output(result):
    """Parse the single JSON envelope a command wrote."""
    return json.loads(result.output.strip().splitlines()[-1])
