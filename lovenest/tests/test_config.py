import os
import unittest
from unittest.mock import patch

from lovenest.config import Settings


class SettingsTests(unittest.TestCase):
    def test_defaults(self):
        with patch.dict(os.environ, {}, clear=True):
            settings = Settings(_env_file=None)
        self.assertEqual(settings.api_prefix, "/api")
        self.assertEqual(settings.public_collections, ["quotes"])
        self.assertEqual(settings.cors_origins, ["http://localhost:5173"])

    def test_comma_separated_lists_from_env(self):
        env = {
            "LOVENEST_PUBLIC_COLLECTIONS": "quotes, wishes",
            "LOVENEST_CORS_ORIGINS": "http://a.test,http://b.test",
        }
        with patch.dict(os.environ, env, clear=True):
            settings = Settings(_env_file=None)
        self.assertEqual(settings.public_collections, ["quotes", "wishes"])
        self.assertEqual(settings.cors_origins, ["http://a.test", "http://b.test"])

    def test_json_lists_from_env(self):
        env = {"LOVENEST_PUBLIC_COLLECTIONS": '["quotes", "wishes"]'}
        with patch.dict(os.environ, env, clear=True):
            settings = Settings(_env_file=None)
        self.assertEqual(settings.public_collections, ["quotes", "wishes"])

    def test_empty_value_means_no_public_collections(self):
        with patch.dict(os.environ, {"LOVENEST_PUBLIC_COLLECTIONS": ""}, clear=True):
            settings = Settings(_env_file=None)
        self.assertEqual(settings.public_collections, [])


if __name__ == "__main__":
    unittest.main()
