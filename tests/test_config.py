import os

import toml

from snipsmith.config import AppConfig, ConfigManager


class TestConfigManager:
    def test_creates_default_file(self, tmp_path):
        path = tmp_path / "nested" / "config.toml"
        manager = ConfigManager(config_file=str(path))
        assert os.path.exists(path)
        assert manager.get().snippets["brb"] == "be right back"

        data = toml.load(str(path))
        assert data["lock_cooldown_ms"] == 500

    def test_loads_known_keys_only(self, tmp_path):
        path = tmp_path / "config.toml"
        path.write_text(
            'case_sensitive = false\n'
            'paste_method = "ctrl_v"\n'
            'mystery = 1\n'
            '[snippets]\n'
            'omw = "on my way"\n'
        )
        config = ConfigManager(config_file=str(path)).get()
        assert config.case_sensitive is False
        assert config.paste_method == "ctrl_v"
        assert config.snippets == {"omw": "on my way"}
        assert not hasattr(config, "mystery")

    def test_broken_file_keeps_defaults(self, tmp_path):
        path = tmp_path / "config.toml"
        path.write_text("this is = = not toml")
        config = ConfigManager(config_file=str(path)).get()
        assert config == AppConfig()

    def test_save_round_trips_changes(self, tmp_path):
        path = str(tmp_path / "config.toml")
        manager = ConfigManager(config_file=path)
        manager.get().failure_cooldown_ms = 1234
        manager.save()
        assert ConfigManager(config_file=path).get().failure_cooldown_ms == 1234

    def test_default_location_follows_xdg(self, tmp_path, monkeypatch):
        monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path))
        manager = ConfigManager()
        assert manager.config_file == os.path.join(str(tmp_path), "snipsmith", "config.toml")
