import os
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from consensusai.config import DEFAULT_CONFIG_PATH, Config, load_config


class ConfigTests(unittest.TestCase):
    def _write(self, tmpdir, name, text):
        path = Path(tmpdir) / name
        path.write_text(text)
        return path

    def test_default_config_ships(self):
        self.assertTrue(DEFAULT_CONFIG_PATH.exists())
        with patch.dict(os.environ, {}, clear=True):
            config = Config(load_config(user_path=Path("/nonexistent/consensusai.yaml")))
        self.assertEqual(config.vendor_round_cap, 5)
        self.assertEqual(config.oracle["provider"], "groq")

    def test_user_config_deep_merges(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            default = self._write(tmpdir, "default.yaml", "negotiation:\n  vendor_round_cap: 5\n  max_workers: 4\n")
            user = self._write(tmpdir, "user.yaml", "negotiation:\n  vendor_round_cap: 3\n")
            with patch.dict(os.environ, {}, clear=True):
                config = Config(load_config(default, user))
        self.assertEqual(config.vendor_round_cap, 3)
        self.assertEqual(config.max_workers, 4)

    def test_env_overrides(self):
        env = {
            "CONSENSUSAI_PORT": "9001",
            "CONSENSUSAI_DATA_DIR": "/tmp/consensus-data",
            "CONSENSUSAI_PROVIDER": " Gemini ",
            "CONSENSUSAI_ORACLE_TIMEOUT": "15",
            "CONSENSUSAI_VENDOR_ROUND_CAP": "7",
            "CONSENSUSAI_LOG_LEVEL": "debug",
        }
        with tempfile.TemporaryDirectory() as tmpdir:
            default = self._write(tmpdir, "default.yaml", "server:\n  host: 127.0.0.1\n  port: 8098\n")
            with patch.dict(os.environ, env, clear=True):
                config = Config(load_config(default, Path(tmpdir) / "missing.yaml"))
        self.assertEqual(config.server["port"], 9001)
        self.assertEqual(config.server["host"], "127.0.0.1")
        self.assertEqual(config.data_dir, Path("/tmp/consensus-data"))
        self.assertEqual(config.oracle["provider"], "gemini")
        self.assertEqual(config.oracle_timeout_seconds, 15.0)
        self.assertEqual(config.vendor_round_cap, 7)
        self.assertEqual(config.log_level, "DEBUG")

    def test_bad_integer_env_ignored(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            default = self._write(tmpdir, "default.yaml", "negotiation:\n  vendor_round_cap: 5\n")
            with patch.dict(os.environ, {"CONSENSUSAI_VENDOR_ROUND_CAP": "many"}, clear=True):
                config = Config(load_config(default, Path(tmpdir) / "missing.yaml"))
        self.assertEqual(config.vendor_round_cap, 5)

    def test_defaults_without_files(self):
        config = Config({})
        self.assertEqual(config.oracle_timeout_seconds, 60.0)
        self.assertEqual(config.vendor_round_cap, 5)
        self.assertEqual(config.auto_max_rounds, 10)
        self.assertEqual(config.log_level, "INFO")
        self.assertEqual(config.data_dir, Path.home() / ".consensusai")


if __name__ == "__main__":
    unittest.main()
