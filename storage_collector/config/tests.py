"""
Tests for loading settings from files and the environment.
"""
import json
import logging
import os
import unittest
from tempfile import TemporaryDirectory
from unittest import mock

from . import Settings
from ..core.errors import ConfigError

SETTINGS_YAML = """
policy:
  max_pages: 50
  request_timeout: 10
  retry:
    max_attempts: 6
    base_delay: 1.0
vendors:
  - name: lab-eseries
    vendor: eseries
    endpoint: 10.0.0.5
    username: monitor
    password: secret
    system_id: '600A098000F63714000000005E79C888'
  - name: filer
    vendor: netapp
    endpoint: filer1.example.com
    username: admin
    password: secret
    tls_ca: /etc/ssl/netapp.pem
    max_records: 200
influxdb_url: https://influx:8181
influxdb_database: storage
tls_ca: /etc/ssl/ca.pem
"""


class SettingsTestCase(unittest.TestCase):

    def setUp(self):
        self.temp_dir = TemporaryDirectory()
        self.directory = self.temp_dir.name
        self.env = mock.patch.dict(os.environ, {}, clear=True)
        self.env.start()

    def tearDown(self):
        self.env.stop()
        self.temp_dir.cleanup()

    def write_file(self, name, content):
        path = os.path.join(self.directory, name)
        with open(path, 'w', encoding='utf-8') as f:
            f.write(content)
        return path


class TestSettingsFile(SettingsTestCase):
    """YAML and JSON settings files."""

    def test_yaml_file(self):
        settings = Settings(self.write_file('collector.yaml', SETTINGS_YAML))

        self.assertEqual(len(settings.vendor_entries), 2)
        self.assertEqual(settings.influxdb_url, 'https://influx:8181')
        policy = settings.policy
        self.assertEqual(policy.max_pages, 50)
        self.assertEqual(policy.request_timeout, 10)
        self.assertEqual(policy.retry.max_attempts, 6)
        self.assertEqual(policy.retry.max_delay, 8.0)

    def test_vendor_configs(self):
        settings = Settings(self.write_file('collector.yml', SETTINGS_YAML))
        eseries, netapp = settings.vendor_configs()

        self.assertEqual(eseries.vendor, 'eseries')
        self.assertEqual(eseries.option('system_id'), '600A098000F63714000000005E79C888')
        self.assertEqual(eseries.option('name'), 'lab-eseries')
        # global CA applies where the entry has none
        self.assertEqual(eseries.tls_ca, '/etc/ssl/ca.pem')
        self.assertEqual(netapp.tls_ca, '/etc/ssl/netapp.pem')
        self.assertEqual(netapp.option('max_records'), 200)

    def test_json_file(self):
        document = {'vendors': [{'vendor': 'scaleio', 'endpoint': 'gw1', 'username': 'a', 'password': 'b'}]}
        settings = Settings(self.write_file('collector.json', json.dumps(document)))
        self.assertEqual(settings.vendor_configs()[0].endpoint, 'gw1')
        self.assertEqual(settings.policy.max_pages, 1000)

    def test_empty_file(self):
        settings = Settings(self.write_file('collector.yaml', ''))
        self.assertEqual(settings.vendor_configs(), [])

    def test_missing_file(self):
        with self.assertRaises(ConfigError):
            Settings(os.path.join(self.directory, 'absent.yaml'))

    def test_unsupported_extension(self):
        with self.assertRaises(ConfigError):
            Settings(self.write_file('collector.txt', SETTINGS_YAML))

    def test_invalid_yaml(self):
        with self.assertRaises(ConfigError):
            Settings(self.write_file('collector.yaml', 'vendors: [unclosed'))

    def test_vendors_must_be_a_list(self):
        with self.assertRaises(ConfigError):
            Settings(self.write_file('collector.yaml', 'vendors:\n  eseries: 10.0.0.5\n'))

    def test_invalid_policy_value(self):
        settings = Settings(self.write_file('collector.yaml', 'policy:\n  max_pages: 0\n'))
        with self.assertRaises(ConfigError):
            settings.policy


class TestEnvironment(SettingsTestCase):
    """Environment variables override the file."""

    def test_credentials_per_entry(self):
        os.environ.update({'LAB_ESERIES_PASSWORD': 'from-env', 'FILER_USERNAME': 'monitor'})
        eseries, netapp = Settings(self.write_file('collector.yaml', SETTINGS_YAML)).vendor_configs()
        self.assertEqual(eseries.password, 'from-env')
        self.assertEqual(netapp.username, 'monitor')
        self.assertEqual(netapp.password, 'secret')

    def test_policy_overrides(self):
        os.environ.update({'COLLECTOR_MAX_ATTEMPTS': '2', 'COLLECTOR_MAX_PAGES': '7',
                           'COLLECTOR_SESSION_TTL': '300'})
        policy = Settings(self.write_file('collector.yaml', SETTINGS_YAML)).policy
        self.assertEqual(policy.retry.max_attempts, 2)
        self.assertEqual(policy.retry.base_delay, 1.0)
        self.assertEqual(policy.max_pages, 7)
        self.assertEqual(policy.session_ttl, 300.0)

    def test_bad_policy_override(self):
        os.environ['COLLECTOR_REQUEST_TIMEOUT'] = 'soon'
        with self.assertRaises(ConfigError):
            Settings()

    def test_sink_settings(self):
        os.environ.update({'INFLUXDB_URL': 'https://other:8181', 'INFLUXDB_TOKEN': 'tok', 'TLS_CA': '/ca.pem'})
        settings = Settings(self.write_file('collector.yaml', SETTINGS_YAML))
        self.assertEqual(settings.influxdb_url, 'https://other:8181')
        self.assertEqual(settings.influxdb_database, 'storage')
        self.assertEqual(settings.influxdb_token, 'tok')
        self.assertEqual(settings.tls_ca, '/ca.pem')

    def test_environment_ignored_when_disabled(self):
        os.environ['INFLUXDB_URL'] = 'https://other:8181'
        settings = Settings(self.write_file('collector.yaml', SETTINGS_YAML), from_env=False)
        self.assertEqual(settings.influxdb_url, 'https://influx:8181')

    def test_env_prefix(self):
        self.assertEqual(Settings.env_prefix({'name': 'lab-eseries.01'}), 'LAB_ESERIES_01')
        self.assertEqual(Settings.env_prefix({'vendor': 'vmax'}), 'VMAX')


if __name__ == '__main__':
    logging.basicConfig(level=logging.ERROR)
    unittest.main()
