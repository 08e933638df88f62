"""
Tests for the session manager and authentication strategies.
"""
import logging
import threading
import time
import unittest

from .auth import BasicAuthenticator, BearerTokenAuthenticator, CookieLoginAuthenticator, TokenLoginAuthenticator
from .manager import SessionManager
from ..core.config import PolicySettings, VendorConfig
from ..core.errors import ConfigError, IncompleteConfigError, LoginFailedError
from ..transport.base import RawResponse
from ..transport.replay import ReplayTransport


class TestVendorConfig(unittest.TestCase):
    """Validation and identity of vendor configs."""

    def test_missing_endpoint_and_credentials(self):
        with self.assertRaises(IncompleteConfigError) as ctx:
            VendorConfig(vendor='netapp', endpoint='').validate()
        self.assertEqual(ctx.exception.missing, ['endpoint', 'username', 'password'])

    def test_token_is_enough(self):
        config = VendorConfig(vendor='x', endpoint='array1', token='t0k')
        self.assertIs(config.validate(), config)

    def test_invalid_tls_mode(self):
        with self.assertRaises(ConfigError):
            VendorConfig(vendor='x', endpoint='array1', tls_validation='lax')

    def test_identity_depends_on_credentials(self):
        a = VendorConfig('netapp', 'HTTPS://Filer1/', 'admin', 'one')
        b = VendorConfig('netapp', 'filer1', 'admin', 'two')
        self.assertEqual(a.identity_key[0], 'filer1')
        self.assertEqual(a.identity_key[0], b.identity_key[0])
        self.assertNotEqual(a.identity_key, b.identity_key)

    def test_base_url(self):
        self.assertEqual(VendorConfig('x', 'array1').base_url('https', 8443), 'https://array1:8443')
        self.assertEqual(VendorConfig('x', 'array1:9000').base_url('https', 8443), 'https://array1:9000')
        self.assertEqual(VendorConfig('x', 'http://array1/').base_url('https', 8443), 'http://array1')

    def test_options_read_only(self):
        config = VendorConfig('x', 'array1', options={'system_id': '2'})
        self.assertEqual(config.option('system_id'), '2')
        with self.assertRaises(TypeError):
            config.options['system_id'] = '3'


class TestSessionManager(unittest.TestCase):
    """Session reuse, expiry and re-authentication."""

    def setUp(self):
        self.now = [1000.0]
        self.transport = ReplayTransport()
        self.manager = SessionManager(self.transport, PolicySettings(session_ttl=60),
                                      clock=lambda: self.now[0])
        self.auth = BasicAuthenticator()
        self.config = VendorConfig('netapp', 'filer1', 'admin', 'secret')

    def test_session_reused_until_expiry(self):
        first = self.manager.get_valid(self.config, self.auth)
        self.assertIs(self.manager.get_valid(self.config, self.auth), first)
        self.assertEqual(first.expires_at, 1060.0)

        self.now[0] = 1061.0
        second = self.manager.get_valid(self.config, self.auth)
        self.assertIsNot(second, first)
        self.assertEqual(self.manager.login_count, 2)

    def test_identities_kept_apart(self):
        other = VendorConfig('netapp', 'filer1', 'monitor', 'secret')
        self.manager.get_valid(self.config, self.auth)
        self.manager.get_valid(other, self.auth)
        self.assertEqual(len(self.manager), 2)

    def test_reauthenticate_once_per_stale_session(self):
        stale = self.manager.get_valid(self.config, self.auth)
        fresh = self.manager.reauthenticate(self.config, self.auth, stale)
        self.assertTrue(stale.invalidated)
        # A second caller holding the same stale session gets the fresh one
        self.assertIs(self.manager.reauthenticate(self.config, self.auth, stale), fresh)
        self.assertEqual(self.manager.login_count, 2)

    def test_invalidate_forces_login(self):
        self.manager.get_valid(self.config, self.auth)
        self.manager.invalidate(self.config)
        self.manager.get_valid(self.config, self.auth)
        self.assertEqual(self.manager.login_count, 2)

    def test_basic_auth_requires_password(self):
        with self.assertRaises(IncompleteConfigError):
            self.manager.get_valid(VendorConfig('netapp', 'filer1', 'admin'), self.auth)

    def test_concurrent_callers_share_one_login(self):
        def slow_login(call):
            time.sleep(0.05)
            return RawResponse(200, cookies={'sid': 'abc'})

        self.transport.add('POST', '/login', slow_login)
        auth = CookieLoginAuthenticator('login', required_cookies=('sid',))
        manager = SessionManager(self.transport)
        sessions = []
        barrier = threading.Barrier(8)

        def worker():
            barrier.wait()
            sessions.append(manager.ensure_session(self.config, auth).current())

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self.assertEqual(self.transport.count('POST', '/login'), 1)
        self.assertEqual(manager.login_count, 1)
        self.assertEqual(len({id(s) for s in sessions}), 1)

    def test_close_logs_out_every_session(self):
        class Recording(BasicAuthenticator):
            logged_out = []

            def logout(self, session, transport, timeout):
                self.logged_out.append(session.config.username)

        auth = Recording()
        self.manager.get_valid(self.config, auth)
        self.manager.close()
        self.assertEqual(Recording.logged_out, ['admin'])
        self.assertEqual(len(self.manager), 0)


class TestAuthenticators(unittest.TestCase):
    """Login round trips against a scripted endpoint."""

    def setUp(self):
        self.transport = ReplayTransport()
        self.config = VendorConfig('x', 'array1', 'admin', 'secret')

    def test_cookie_login_form(self):
        self.transport.add('POST', '/Login', RawResponse(200, cookies={'Ticket': 't1'}))
        auth = CookieLoginAuthenticator('Login', required_cookies=('Ticket',))
        session = auth.login(self.config, self.transport, 5)
        self.assertEqual(session.cookies, {'Ticket': 't1'})
        call = self.transport.calls[0]
        self.assertEqual(call.url, 'https://array1/Login')
        self.assertEqual(call.text, 'username=admin&password=secret')

    def test_cookie_login_missing_cookie(self):
        self.transport.add('POST', '/Login', RawResponse(200))
        auth = CookieLoginAuthenticator('Login', required_cookies=('Ticket',))
        with self.assertRaises(LoginFailedError):
            auth.login(self.config, self.transport, 5)

    def test_cookie_login_rejected(self):
        self.transport.add('POST', '/Login', RawResponse(401))
        with self.assertRaises(LoginFailedError):
            CookieLoginAuthenticator('Login').login(self.config, self.transport, 5)

    def test_token_login(self):
        self.transport.add('GET', '/api/login', RawResponse(200, b'"tok-123"'))
        session = TokenLoginAuthenticator('api/login').login(self.config, self.transport, 5)
        self.assertEqual(session.auth, ('admin', 'tok-123'))
        self.assertEqual(self.transport.calls[0].auth, ('admin', 'secret'))

    def test_token_login_empty_token(self):
        self.transport.add('GET', '/api/login', RawResponse(200, b'""'))
        with self.assertRaises(LoginFailedError):
            TokenLoginAuthenticator('api/login').login(self.config, self.transport, 5)

    def test_bearer_token(self):
        session = BearerTokenAuthenticator().login(VendorConfig('x', 'array1', token='abc'), self.transport, 5)
        self.assertEqual(session.headers, {'Authorization': 'Bearer abc'})
        self.assertEqual(self.transport.calls, [])

    def test_port_and_scheme_options(self):
        self.transport.add('GET', '/api/login', RawResponse(200, b'tok'))
        config = VendorConfig('x', 'array1', 'admin', 'secret', options={'scheme': 'http', 'port': 8080})
        TokenLoginAuthenticator('api/login', default_port=443).login(config, self.transport, 5)
        self.assertEqual(self.transport.calls[0].url, 'http://array1:8080/api/login')


if __name__ == '__main__':
    logging.basicConfig(level=logging.ERROR)
    unittest.main()
