import json
import os
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from showtime_monitor.config import (
    AppConfig,
    load_config,
    resolve_database_path,
    template_config,
)
from showtime_monitor.errors import ConfigError

FILE_CONFIG = {
    "theatre": "AMC Lincoln Square 13",
    "telegram": {"botToken": "123:file-token", "chatId": "42"},
    "amcApiKey": "file-key",
}

FULL_ENV = {
    "THEATRE": "AMC Empire 25",
    "TELEGRAM_BOT_TOKEN": "123:env-token",
    "TELEGRAM_CHAT_ID": "99",
    "AMC_API_KEY": "env-key",
}


class LoadConfigTests(unittest.TestCase):
    def setUp(self) -> None:
        self.tmpdir = tempfile.TemporaryDirectory()
        self.path = Path(self.tmpdir.name) / "config.json"
        # keep a developer's .env out of the tests
        dotenv = patch("showtime_monitor.config.load_dotenv")
        dotenv.start()
        self.addCleanup(dotenv.stop)

    def tearDown(self) -> None:
        self.tmpdir.cleanup()

    def write(self, data) -> None:
        self.path.write_text(json.dumps(data), encoding="utf-8")

    def load(self, env: dict | None = None) -> AppConfig:
        with patch.dict(os.environ, env or {}, clear=True):
            return load_config(self.path)

    def test_file_values_and_defaults(self) -> None:
        self.write(FILE_CONFIG)
        config = self.load()
        self.assertEqual(config.theatre, "AMC Lincoln Square 13")
        self.assertEqual(config.telegram_bot_token, "123:file-token")
        self.assertEqual(config.telegram_chat_id, "42")
        self.assertEqual(config.amc_api_key, "file-key")
        self.assertEqual(config.title_match_threshold, 0.4)
        self.assertEqual(config.send_delay_seconds, 0.5)
        self.assertEqual(config.http_timeout_seconds, 10.0)
        self.assertEqual(config.database_path, "./amc-monitor.db")

    def test_environment_wins(self) -> None:
        self.write(FILE_CONFIG)
        config = self.load({"THEATRE": "AMC Empire 25", "TITLE_MATCH_THRESHOLD": "0.55"})
        self.assertEqual(config.theatre, "AMC Empire 25")
        self.assertEqual(config.amc_api_key, "file-key")
        self.assertEqual(config.title_match_threshold, 0.55)

    def test_environment_only(self) -> None:
        config = self.load(FULL_ENV)
        self.assertEqual(config.telegram_chat_id, "99")

    def test_numeric_chat_id_in_file(self) -> None:
        self.write({**FILE_CONFIG, "telegram": {"botToken": "t", "chatId": 12345}})
        self.assertEqual(self.load().telegram_chat_id, "12345")

    def test_missing_fields_are_all_listed(self) -> None:
        self.write({"theatre": "AMC Lincoln Square 13"})
        with self.assertRaises(ConfigError) as ctx:
            self.load()
        message = str(ctx.exception)
        self.assertIn("telegram.botToken: cannot be empty", message)
        self.assertIn("amcApiKey: cannot be empty", message)
        self.assertNotIn("theatre: cannot be empty", message)
        self.assertIn("AMC_API_KEY", message)

    def test_threshold_out_of_range(self) -> None:
        self.write({**FILE_CONFIG, "titleMatchThreshold": 1.5})
        with self.assertRaises(ConfigError):
            self.load()

    def test_non_numeric_delay(self) -> None:
        self.write(FILE_CONFIG)
        with self.assertRaises(ConfigError):
            self.load({"SEND_DELAY_SECONDS": "soon"})

    def test_invalid_json(self) -> None:
        self.path.write_text("{not json", encoding="utf-8")
        with self.assertRaises(ConfigError):
            self.load(FULL_ENV)

    def test_template_loads_back(self) -> None:
        self.write(template_config())
        config = self.load()
        self.assertEqual(config.to_dict(), template_config())

    def test_database_path_without_required_fields(self) -> None:
        self.write({"databasePath": "/srv/amc/file.db"})
        with patch.dict(os.environ, {}, clear=True):
            self.assertEqual(resolve_database_path(self.path), "/srv/amc/file.db")
        with patch.dict(os.environ, {"DATABASE_PATH": "/srv/amc/env.db"}, clear=True):
            self.assertEqual(resolve_database_path(self.path), "/srv/amc/env.db")

    def test_database_path_default(self) -> None:
        with patch.dict(os.environ, {}, clear=True):
            self.assertEqual(resolve_database_path(self.path), "./amc-monitor.db")


if __name__ == "__main__":
    unittest.main()
