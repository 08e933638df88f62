"""
Tests for the request dispatcher: retry, re-authentication and pagination.
"""
import json
import logging
import threading
import unittest

from .dispatcher import RequestDispatcher
from .request_spec import RequestSpec
from .retry import backoff_delay, is_transient_status
from ..codec.wire_codec import ShapeTag
from ..core.config import PolicySettings, RetryPolicy, VendorConfig
from ..core.errors import (
    AuthRejectedError, DispatchCancelledError, HttpStatusError, PaginationLoopError,
    RetriesExhaustedError, TransportConnectionError, TransportError, TransportTimeoutError
)
from ..schema.models import Volume
from ..session.auth import BasicAuthenticator
from ..session.manager import SessionManager
from ..transport.base import RawResponse
from ..transport.replay import ReplayTransport


def json_page(response, spec):
    """Page parser for ``{"items": [...], "next": cursor}`` bodies."""
    document = json.loads(response.body)
    records = [Volume(source_vendor='test', id=item) for item in document['items']]
    return records, document.get('next')


def ok(document):
    return RawResponse(200, json.dumps(document).encode('utf-8'), 'application/json')


class DispatcherTestCase(unittest.TestCase):

    def setUp(self):
        self.transport = ReplayTransport()
        self.sleeps = []
        self.policy = PolicySettings()
        self.config = VendorConfig('test', 'array1', 'admin', 'secret')
        self.manager = SessionManager(self.transport, self.policy)
        self.handle = self.manager.ensure_session(self.config, BasicAuthenticator())
        self.dispatcher = RequestDispatcher(self.transport, self.policy, sleep=self.sleeps.append,
                                            rng=lambda: 0.5)
        self.spec = RequestSpec(operation='list_volumes', method='GET', path='api/volumes',
                                shape=ShapeTag.JSON, base_url='https://array1')


class TestRetry(DispatcherTestCase):
    """Transient failures are retried up to the attempt limit."""

    def test_transient_failures_below_limit(self):
        self.transport.add('GET', 'api/volumes', RawResponse(503), TransportTimeoutError('slow'),
                           RawResponse(502), ok({'items': []}))
        response = self.dispatcher.send(self.spec, self.handle)
        self.assertEqual(response.status_code, 200)
        self.assertEqual(self.transport.count('GET', 'api/volumes'), 4)
        self.assertEqual(len(self.sleeps), 3)

    def test_retries_exhausted(self):
        self.transport.add('GET', 'api/volumes', RawResponse(500))
        with self.assertRaises(RetriesExhaustedError) as ctx:
            self.dispatcher.send(self.spec, self.handle)
        self.assertEqual(ctx.exception.attempts, 4)
        self.assertEqual(ctx.exception.vendor, 'test')
        self.assertEqual(ctx.exception.operation, 'list_volumes')
        self.assertIsInstance(ctx.exception.last_error, HttpStatusError)
        self.assertEqual(self.transport.count(), 4)

    def test_connection_errors_are_transient(self):
        self.transport.add('GET', 'api/volumes', TransportConnectionError('reset'), ok({'items': []}))
        self.dispatcher.send(self.spec, self.handle)
        self.assertEqual(self.transport.count(), 2)

    def test_client_error_not_retried(self):
        self.transport.add('GET', 'api/volumes', RawResponse(404, b'no such thing'))
        with self.assertRaises(HttpStatusError) as ctx:
            self.dispatcher.send(self.spec, self.handle)
        self.assertEqual(ctx.exception.status_code, 404)
        self.assertEqual(self.transport.count(), 1)
        self.assertEqual(self.sleeps, [])

    def test_non_retryable_transport_error(self):
        self.transport.add('GET', 'api/volumes', TransportError('bad certificate', retryable=False))
        with self.assertRaises(TransportError):
            self.dispatcher.send(self.spec, self.handle)
        self.assertEqual(self.transport.count(), 1)

    def test_backoff_grows(self):
        self.transport.add('GET', 'api/volumes', RawResponse(503), RawResponse(503), RawResponse(503),
                           ok({'items': []}))
        self.dispatcher.send(self.spec, self.handle)
        # rng=0.5 puts every jittered delay at 3/4 of the exponential step
        self.assertEqual(self.sleeps, [0.375, 0.75, 1.5])

    def test_cancelled_before_first_request(self):
        cancel = threading.Event()
        cancel.set()
        with self.assertRaises(DispatchCancelledError):
            self.dispatcher.execute(self.spec, self.handle, json_page, cancel=cancel)
        self.assertEqual(self.transport.count(), 0)


class TestReauthentication(DispatcherTestCase):
    """A 401/403 gets exactly one re-login and one retry."""

    def test_single_reauthentication(self):
        self.transport.add('GET', 'api/volumes', RawResponse(401), ok({'items': ['a']}))
        result = self.dispatcher.execute(self.spec, self.handle, json_page)
        self.assertEqual([v.id for v in result], ['a'])
        self.assertEqual(self.manager.login_count, 2)
        self.assertEqual(self.transport.count(), 2)
        self.assertEqual(result.metadata['reauthentications'], 1)

    def test_second_rejection_is_fatal(self):
        self.transport.add('GET', 'api/volumes', RawResponse(403))
        with self.assertRaises(AuthRejectedError):
            self.dispatcher.send(self.spec, self.handle)
        self.assertEqual(self.manager.login_count, 2)
        self.assertEqual(self.transport.count(), 2)


class TestPagination(DispatcherTestCase):
    """Cursor following, de-duplication and loop protection."""

    def test_pages_merged_in_order(self):
        spec = RequestSpec('list_volumes', 'GET', 'api/volumes', ShapeTag.JSON, base_url='https://array1',
                           paged=True, cursor_param='marker')
        self.transport.add('GET', 'api/volumes', ok({'items': ['a', 'b'], 'next': 'm2'}),
                           ok({'items': ['b', 'c'], 'next': 'm3'}), ok({'items': ['d']}))
        result = self.dispatcher.execute(spec, self.handle, json_page)
        self.assertEqual([v.id for v in result], ['a', 'b', 'c', 'd'])
        self.assertEqual(result.metadata['pages'], 3)
        self.assertEqual([c.url for c in self.transport.calls],
                         ['https://array1/api/volumes',
                          'https://array1/api/volumes?marker=m2',
                          'https://array1/api/volumes?marker=m3'])

    def test_unpaged_spec_ignores_cursor(self):
        self.transport.add('GET', 'api/volumes', ok({'items': ['a'], 'next': 'm2'}))
        result = self.dispatcher.execute(self.spec, self.handle, json_page)
        self.assertEqual(len(result), 1)
        self.assertEqual(self.transport.count(), 1)

    def test_repeated_cursor(self):
        spec = RequestSpec('list_volumes', 'GET', 'api/volumes', ShapeTag.JSON, base_url='https://array1',
                           paged=True, cursor_param='marker')
        self.transport.add('GET', 'api/volumes', ok({'items': ['a'], 'next': 'same'}))
        with self.assertRaises(PaginationLoopError) as ctx:
            self.dispatcher.execute(spec, self.handle, json_page)
        self.assertEqual(ctx.exception.pages, 2)
        self.assertEqual(self.transport.count(), 2)

    def test_page_limit(self):
        dispatcher = RequestDispatcher(self.transport, PolicySettings(max_pages=3), sleep=self.sleeps.append)
        spec = RequestSpec('list_volumes', 'GET', 'api/volumes', ShapeTag.JSON, base_url='https://array1',
                           paged=True, cursor_param='marker')
        counter = iter(range(1, 100))

        def endless(call):
            n = next(counter)
            return ok({'items': [str(n)], 'next': f"m{n + 1}"})

        self.transport.add('GET', 'api/volumes', endless)
        with self.assertRaises(PaginationLoopError) as ctx:
            dispatcher.execute(spec, self.handle, json_page)
        self.assertEqual(ctx.exception.pages, 3)
        self.assertEqual(self.transport.count(), 3)

    def test_custom_next_spec(self):
        spec = RequestSpec('list_volumes', 'POST', 'rpc', ShapeTag.JSON, base_url='https://array1',
                           body=b'{"start": 0}', paged=True)
        self.transport.add('POST', 'rpc', ok({'items': ['a'], 'next': '5'}), ok({'items': ['b']}))

        def next_spec(current, cursor):
            return RequestSpec(current.operation, current.method, current.path, current.shape,
                               base_url=current.base_url, body=json.dumps({'start': int(cursor)}).encode(),
                               paged=True, cursor=cursor)

        result = self.dispatcher.execute(spec, self.handle, json_page, next_spec=next_spec)
        self.assertEqual([v.id for v in result], ['a', 'b'])
        self.assertEqual(self.transport.calls[1].text, '{"start": 5}')
        self.assertEqual(self.transport.calls[1].headers['Content-Type'], 'application/json')


class TestRequestSpec(unittest.TestCase):

    def test_url_rendering(self):
        spec = RequestSpec('list_pools', 'GET', 'objects/{record}', ShapeTag.CSV, base_url='http://htnm/',
                           path_params={'record': 'RAID PD'}, query={'hostName': 'h1', 'skip': None})
        self.assertEqual(spec.url(), 'http://htnm/objects/RAID%20PD?hostName=h1')

    def test_with_cursor_keeps_original(self):
        spec = RequestSpec('list_volumes', 'GET', 'v', ShapeTag.JSON, query={'a': 1}, cursor_param='c')
        follow = spec.with_cursor('x')
        self.assertEqual(follow.query, {'a': 1, 'c': 'x'})
        self.assertEqual(spec.query, {'a': 1})
        self.assertIsNone(spec.cursor)


class TestBackoff(unittest.TestCase):

    def test_exponential_and_capped(self):
        policy = RetryPolicy(jitter=False)
        self.assertEqual([backoff_delay(policy, i) for i in range(6)], [0.5, 1.0, 2.0, 4.0, 8.0, 8.0])

    def test_jitter_upper_half(self):
        policy = RetryPolicy(base_delay=2.0)
        self.assertEqual(backoff_delay(policy, 0, rng=lambda: 0.0), 1.0)
        self.assertEqual(backoff_delay(policy, 0, rng=lambda: 1.0), 2.0)

    def test_transient_statuses(self):
        self.assertTrue(is_transient_status(503))
        self.assertFalse(is_transient_status(429))
        self.assertFalse(is_transient_status(404))


if __name__ == '__main__':
    logging.basicConfig(level=logging.ERROR)
    unittest.main()
