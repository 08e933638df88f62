"""
Tests for the transports.
"""
import json
import logging
import os
import unittest
from tempfile import TemporaryDirectory
from unittest import mock

import requests
from requests.cookies import cookiejar_from_dict

from .base import RawResponse
from .replay import ReplayTransport
from .requests_transport import RequestsTransport
from ..core.errors import TransportConnectionError, TransportError, TransportTimeoutError


class TestReplayTransport(unittest.TestCase):
    """Scripted replies and the call log."""

    def setUp(self):
        self.transport = ReplayTransport()

    def test_replies_in_order_last_repeats(self):
        self.transport.add('GET', '/volumes', RawResponse(500), RawResponse(200, b'ok'))
        statuses = [self.transport.send('GET', 'https://a/volumes').status_code for _ in range(3)]
        self.assertEqual(statuses, [500, 200, 200])

    def test_method_and_fragment_matching(self):
        self.transport.add('POST', '/volumes', RawResponse(201))
        self.transport.add('*', '/volumes', RawResponse(200))
        self.assertEqual(self.transport.send('POST', 'https://a/volumes').status_code, 201)
        self.assertEqual(self.transport.send('DELETE', 'https://a/volumes').status_code, 200)
        self.assertEqual(self.transport.send('GET', 'https://a/pools').status_code, 404)

    def test_exception_and_callable_replies(self):
        self.transport.add('GET', '/boom', TransportTimeoutError('slow'))
        self.transport.add('POST', '/echo', lambda call: RawResponse(200, call.body))
        with self.assertRaises(TransportTimeoutError):
            self.transport.send('GET', 'https://a/boom')
        self.assertEqual(self.transport.send('POST', 'https://a/echo', body=b'hi').body, b'hi')

    def test_calls_recorded(self):
        self.transport.add('*', '/', RawResponse(200))
        self.transport.send('get', 'https://a/x', headers={'Accept': 'text/csv'}, auth=('u', 'p'),
                            cookies={'sid': '1'}, timeout=3)
        call = self.transport.calls[0]
        self.assertEqual(call.method, 'GET')
        self.assertEqual(call.headers, {'Accept': 'text/csv'})
        self.assertEqual(call.auth, ('u', 'p'))
        self.assertEqual(call.cookies, {'sid': '1'})
        self.assertEqual(call.timeout, 3)
        self.assertEqual(self.transport.count('GET', '/x'), 1)

    def test_response_url_filled_in(self):
        self.transport.add('GET', '/x', RawResponse(200))
        self.assertEqual(self.transport.send('GET', 'https://a/x').url, 'https://a/x')

    def test_route_needs_reply(self):
        with self.assertRaises(ValueError):
            self.transport.add('GET', '/x')


class TestReplayFromDirectory(unittest.TestCase):
    """Loading a capture directory."""

    def setUp(self):
        self.temp_dir = TemporaryDirectory()
        self.directory = self.temp_dir.name
        with open(os.path.join(self.directory, 'volumes1.json'), 'w', encoding='utf-8') as f:
            json.dump([{'id': 'v1'}], f)
        with open(os.path.join(self.directory, 'volumes2.json'), 'w', encoding='utf-8') as f:
            json.dump([{'id': 'v2'}], f)
        index = [
            {'method': 'GET', 'match': '/api/login', 'status': 200, 'cookies': {'sid': 'abc'}},
            {'method': 'GET', 'match': '/api/types/Volume/instances', 'file': 'volumes1.json',
             'content_type': 'application/json'},
            {'method': 'GET', 'match': '/api/types/Volume/instances', 'file': 'volumes2.json'},
        ]
        with open(os.path.join(self.directory, 'index.json'), 'w', encoding='utf-8') as f:
            json.dump(index, f)

    def tearDown(self):
        self.temp_dir.cleanup()

    def test_recorded_responses_replayed_in_order(self):
        transport = ReplayTransport.from_directory(self.directory)
        login = transport.send('GET', 'https://gw/api/login')
        self.assertEqual(login.cookies, {'sid': 'abc'})

        first = transport.send('GET', 'https://gw/api/types/Volume/instances')
        second = transport.send('GET', 'https://gw/api/types/Volume/instances')
        self.assertEqual(first.json(), [{'id': 'v1'}])
        self.assertEqual(first.content_type, 'application/json')
        self.assertEqual(second.json(), [{'id': 'v2'}])

    def test_missing_index(self):
        os.remove(os.path.join(self.directory, 'index.json'))
        with self.assertRaises(FileNotFoundError):
            ReplayTransport.from_directory(self.directory)


class TestRequestsTransport(unittest.TestCase):
    """requests exceptions map onto transport errors."""

    def setUp(self):
        self.transport = RequestsTransport()

    def tearDown(self):
        self.transport.close()

    def test_tls_modes(self):
        self.assertTrue(self.transport.session.verify)
        self.assertEqual(RequestsTransport(tls_ca='/etc/ca.pem').session.verify, '/etc/ca.pem')
        self.assertFalse(RequestsTransport(tls_validation='none').session.verify)

    def test_response_converted(self):
        response = mock.Mock(status_code=200, content=b'{"a": 1}',
                             headers={'Content-Type': 'application/json'},
                             cookies=cookiejar_from_dict({'sid': 'x'}))
        with mock.patch.object(self.transport.session, 'request', return_value=response) as request:
            raw = self.transport.send('GET', 'https://a/x', timeout=5, cookies={'Ticket': 't'})
        self.assertEqual(raw.status_code, 200)
        self.assertEqual(raw.json(), {'a': 1})
        self.assertEqual(raw.cookies, {'sid': 'x'})
        self.assertEqual(raw.header('content-type'), 'application/json')
        self.assertEqual(request.call_args.kwargs['cookies'], {'Ticket': 't'})
        self.assertFalse(request.call_args.kwargs['allow_redirects'])

    def test_timeout(self):
        with mock.patch.object(self.transport.session, 'request', side_effect=requests.exceptions.ReadTimeout()):
            with self.assertRaises(TransportTimeoutError):
                self.transport.send('GET', 'https://a/x', timeout=1)

    def test_connection_error(self):
        with mock.patch.object(self.transport.session, 'request',
                               side_effect=requests.exceptions.ConnectionError('reset')):
            with self.assertRaises(TransportConnectionError) as ctx:
                self.transport.send('GET', 'https://a/x')
        self.assertTrue(ctx.exception.retryable)

    def test_tls_error_not_retryable(self):
        with mock.patch.object(self.transport.session, 'request',
                               side_effect=requests.exceptions.SSLError('bad cert')):
            with self.assertRaises(TransportError) as ctx:
                self.transport.send('GET', 'https://a/x')
        self.assertFalse(ctx.exception.retryable)


if __name__ == '__main__':
    logging.basicConfig(level=logging.ERROR)
    unittest.main()
