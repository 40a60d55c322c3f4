"""Unit tests for common/settings.py."""

import importlib
import os
import unittest

import common.settings


class TestSettings(unittest.TestCase):
    """Tests for shared application settings."""

    def test_data_dir_defaults_to_data(self) -> None:
        """DATA_DIR defaults to 'data' when the env var is not set."""
        env_backup = os.environ.pop('DATA_DIR', None)
        try:
            importlib.reload(common.settings)
            self.assertEqual(common.settings.DATA_DIR, 'data')
        finally:
            if env_backup is not None:
                os.environ['DATA_DIR'] = env_backup
            importlib.reload(common.settings)

    def test_data_dir_reads_from_env(self) -> None:
        """DATA_DIR is read from the DATA_DIR environment variable."""
        env_backup = os.environ.get('DATA_DIR')
        os.environ['DATA_DIR'] = '/srv/journal'
        try:
            importlib.reload(common.settings)
            self.assertEqual(common.settings.DATA_DIR, '/srv/journal')
        finally:
            if env_backup is None:
                del os.environ['DATA_DIR']
            else:
                os.environ['DATA_DIR'] = env_backup
            importlib.reload(common.settings)

    def test_log_level_is_upper_cased(self) -> None:
        """LOG_LEVEL is normalised to upper case."""
        env_backup = os.environ.get('LOG_LEVEL')
        os.environ['LOG_LEVEL'] = 'debug'
        try:
            importlib.reload(common.settings)
            self.assertEqual(common.settings.LOG_LEVEL, 'DEBUG')
        finally:
            if env_backup is None:
                del os.environ['LOG_LEVEL']
            else:
                os.environ['LOG_LEVEL'] = env_backup
            importlib.reload(common.settings)


if __name__ == '__main__':
    unittest.main()
