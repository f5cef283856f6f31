"""Unit tests for RelayConfig."""

import os
import pytest
from pathlib import Path

from audiorelay.config import DEFAULT_CONFIG, RelayConfig


@pytest.mark.unit
class TestRelayConfig:
    """Test cases for RelayConfig class."""

    def test_defaults(self, monkeypatch, temp_data_dir):
        monkeypatch.chdir(temp_data_dir)
        monkeypatch.delenv('PORT', raising=False)

        config = RelayConfig.defaults()

        assert config.config_file is None
        assert config.get_port() == 3001
        assert config.get('client.max_reconnect_attempts') == 3
        assert config.get('audio.sample_rate') == 16000
        assert config.get_data_directory() == str(Path.cwd() / "audio-data")

    def test_defaults_are_not_shared(self):
        config = RelayConfig.defaults()
        config.set('server.port', 9999)

        assert DEFAULT_CONFIG['server']['port'] == 3001

    def test_load_merges_with_defaults(self, temp_data_dir, monkeypatch):
        monkeypatch.delenv('PORT', raising=False)
        config_file = Path(temp_data_dir) / "relay.yaml"
        config_file.write_text(
            "server:\n"
            "  port: 4000\n"
            "client:\n"
            "  chunk_interval_ms: 250\n"
        )

        config = RelayConfig(str(config_file))

        assert config.get_port() == 4000
        assert config.get('client.chunk_interval_ms') == 250
        # untouched keys keep their defaults
        assert config.get('client.max_reconnect_attempts') == 3
        assert config.get('server.host') == '0.0.0.0'

    def test_relative_paths_resolve_against_config_file(self, temp_data_dir):
        config_file = Path(temp_data_dir) / "relay.yaml"
        config_file.write_text(
            "storage:\n"
            "  data_directory: recordings\n"
            "logging:\n"
            "  file_path: logs/relay.log\n"
        )

        config = RelayConfig(str(config_file))

        assert config.get('storage.data_directory') == str(Path(temp_data_dir) / "recordings")
        assert config.get('logging.file_path') == str(Path(temp_data_dir) / "logs" / "relay.log")

    def test_absolute_paths_kept(self, temp_data_dir):
        absolute = os.path.join(temp_data_dir, "elsewhere")
        config_file = Path(temp_data_dir) / "relay.yaml"
        config_file.write_text(f"storage:\n  data_directory: {absolute}\n")

        config = RelayConfig(str(config_file))

        assert config.get('storage.data_directory') == absolute

    def test_missing_file(self, temp_data_dir):
        with pytest.raises(FileNotFoundError):
            RelayConfig(os.path.join(temp_data_dir, "missing.yaml"))

    def test_empty_file(self, temp_data_dir):
        config_file = Path(temp_data_dir) / "relay.yaml"
        config_file.write_text("")

        with pytest.raises(ValueError, match="empty"):
            RelayConfig(str(config_file))

    def test_invalid_yaml(self, temp_data_dir):
        config_file = Path(temp_data_dir) / "relay.yaml"
        config_file.write_text("server: [unclosed\n")

        with pytest.raises(ValueError, match="Invalid YAML"):
            RelayConfig(str(config_file))

    def test_non_mapping(self, temp_data_dir):
        config_file = Path(temp_data_dir) / "relay.yaml"
        config_file.write_text("- a\n- b\n")

        with pytest.raises(ValueError, match="mapping"):
            RelayConfig(str(config_file))

    def test_get_and_set_dot_notation(self):
        config = RelayConfig.defaults()

        assert config.get('server.missing', 'fallback') == 'fallback'
        assert config.get('server.port.deeper') is None

        config.set('custom.nested.value', 7)
        assert config.get('custom.nested.value') == 7

    def test_port_environment_override(self, monkeypatch):
        monkeypatch.setenv('PORT', '8080')
        config = RelayConfig.defaults()

        assert config.get_port() == 8080

    def test_port_environment_not_a_number(self, monkeypatch):
        monkeypatch.setenv('PORT', 'eighty')
        config = RelayConfig.defaults()

        with pytest.raises(ValueError):
            config.get_port()

    def test_public_url(self):
        config = RelayConfig.defaults()
        assert config.get_public_url() == 'ws://localhost:3001'
