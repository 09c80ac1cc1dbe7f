"""Tests for exporter configuration and the HTTP metrics endpoint."""

import json
from unittest.mock import MagicMock, patch

import pydantic
import pytest
from starlette.testclient import TestClient
from structlog.testing import capture_logs

from slurm_sinfo_exporter import fetchers, server
from slurm_sinfo_exporter.slurmrestapi import SlurmRestApiClient

PAYLOAD = {
    "meta": {},
    "errors": [],
    "nodes": [
        {
            "hostname": "cn001",
            "cpus": 16,
            "idle_cpus": 16,
            "real_memory": 64000,
            "state": "idle",
            "partitions": ["batch"],
        }
    ],
}


@pytest.fixture
def payload_file(tmp_path):
    path = tmp_path / "sinfo.json"
    path.write_text(json.dumps(PAYLOAD))
    return path


@pytest.fixture
def config_file(tmp_path, payload_file):
    path = tmp_path / "config.json"
    path.write_text(
        json.dumps(
            {
                "source": "file",
                "payload_file": str(payload_file),
                "metrics_path": "/slurm-metrics",
                "poll_limit": 0,
            }
        )
    )
    return path


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


def test_config_defaults_to_sinfo_cli():
    """Without settings the exporter runs sinfo --json."""
    config = server.ExporterConfig()

    assert config.source == "cli"
    assert config.sinfo_command == ["sinfo", "--json"]
    assert config.metrics_path == "/metrics"
    assert config.serve_stale is False


@pytest.mark.parametrize(
    "settings",
    [
        {"source": "rest"},
        {"source": "file"},
        {"source": "ssh"},
        {"port": 0},
        {"poll_limit": -1},
        {"sinfo_command": []},
    ],
)
def test_config_rejects_invalid_settings(settings: dict):
    """Incomplete or out-of-range settings fail validation."""
    with pytest.raises(pydantic.ValidationError):
        server.ExporterConfig(**settings)


def test_load_config_missing_file(tmp_path):
    """A missing config file raises FileNotFoundError."""
    with pytest.raises(FileNotFoundError):
        server.load_config(str(tmp_path / "absent.json"))


def test_load_config_reads_json(config_file):
    """Settings are read from the JSON file."""
    config = server.load_config(str(config_file))

    assert config.source == "file"
    assert config.metrics_path == "/slurm-metrics"


# ---------------------------------------------------------------------------
# Fetcher selection
# ---------------------------------------------------------------------------


def test_create_fetcher_cli():
    """The cli source builds a CliFetcher with the configured command."""
    config = server.ExporterConfig(sinfo_command=["/opt/slurm/bin/sinfo", "--json"])

    fetcher, description = server.create_fetcher(config)

    assert isinstance(fetcher, fetchers.CliFetcher)
    assert fetcher.command == ("/opt/slurm/bin/sinfo", "--json")
    assert "sinfo" in description


def test_create_fetcher_file(payload_file):
    """The file source builds a FileFetcher for the payload file."""
    config = server.ExporterConfig(source="file", payload_file=str(payload_file))

    fetcher, _ = server.create_fetcher(config)

    assert isinstance(fetcher, fetchers.FileFetcher)
    assert fetcher.path == payload_file


def test_create_fetcher_rest():
    """The rest source fetches through the REST API client."""
    config = server.ExporterConfig(source="rest", rest_api_url="http://slurmrestd:6820/")

    fetcher, description = server.create_fetcher(config)

    assert isinstance(fetcher.__self__, SlurmRestApiClient)
    assert description == "REST API http://slurmrestd:6820"


# ---------------------------------------------------------------------------
# HTTP endpoint
# ---------------------------------------------------------------------------


def test_metrics_endpoint_serves_node_metrics():
    """The metrics endpoint renders node metrics from the fetched payload."""
    fetcher = MagicMock(return_value=json.dumps(PAYLOAD).encode())
    registry = server.create_registry_with_collectors(fetcher, poll_limit=0.0)
    app = server.create_starlette_app("/metrics", registry)

    response = TestClient(app).get("/metrics")

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/plain")
    assert 'slurm_partition_total_cpus{partition="batch"} 16.0' in response.text
    assert 'slurm_cpus_per_state{state="idle"} 16.0' in response.text
    assert "slurm_node_scrape_error_total 0.0" in response.text


def test_metrics_endpoint_reports_failures():
    """A failing data source still returns 200 with the error counter."""
    fetcher = MagicMock(side_effect=OSError("no route to host"))
    registry = server.create_registry_with_collectors(fetcher, poll_limit=0.0)
    client = TestClient(server.create_starlette_app("/metrics", registry))

    client.get("/metrics")
    response = client.get("/metrics")

    assert response.status_code == 200
    assert "slurm_node_scrape_error_total 2.0" in response.text
    assert "slurm_cpus_total" not in response.text


def test_metrics_endpoint_rejects_other_paths():
    """Only the configured metrics path is served."""
    registry = server.create_registry_with_collectors(MagicMock(), poll_limit=0.0)
    client = TestClient(server.create_starlette_app("/metrics", registry))

    assert client.get("/").status_code == 404


def test_create_app_from_config(config_file, monkeypatch):
    """create_app wires config, fetcher and endpoint together."""
    monkeypatch.setenv(server.CONFIG_ENV_VAR, str(config_file))

    with patch.object(server, "configure_logging") as configure_logging:
        app = server.create_app()

    configure_logging.assert_called_once_with("INFO")
    response = TestClient(app).get("/slurm-metrics")
    assert response.status_code == 200
    assert "slurm_cpus_total 16.0" in response.text


def test_metrics_endpoint_logs_served_scrape():
    """Each scrape is logged with the request path."""
    fetcher = MagicMock(return_value=json.dumps(PAYLOAD).encode())
    registry = server.create_registry_with_collectors(fetcher, poll_limit=0.0)
    client = TestClient(server.create_starlette_app("/metrics", registry))

    with capture_logs() as logs:
        client.get("/metrics")

    served = [log for log in logs if log["event"] == "Served node metrics scrape"]
    assert len(served) == 1
    assert served[0]["path"] == "/metrics"
    assert served[0]["method"] == "GET"
