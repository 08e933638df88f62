"""Request dispatcher: send, retry, re-authenticate, paginate."""

import logging
import random
import threading
import time
from typing import Callable, List, Optional, Tuple

from ..core.config import PolicySettings
from ..core.errors import (
    AuthRejectedError, DispatchCancelledError, HttpStatusError, PaginationLoopError,
    RetriesExhaustedError, StorageCollectorError, TransportError
)
from ..schema.base_model import CommonRecord
from ..schema.models import PagedResult
from ..session.manager import SessionHandle
from ..transport.base import RawResponse, Transport
from .request_spec import RequestSpec
from .retry import RetryStats, backoff_delay, is_auth_status, is_transient_status

LOG = logging.getLogger(__name__)

PageParser = Callable[[RawResponse, RequestSpec], Tuple[List[CommonRecord], Optional[str]]]
NextSpec = Callable[[RequestSpec, str], RequestSpec]


class RequestDispatcher:
    """Executes RequestSpecs against a transport.

    Transient failures (timeouts, connection resets, 5xx) are retried with
    exponential backoff. A 401/403 triggers exactly one re-authentication
    and one retry of the same request. Paged calls follow cursors one page
    at a time, in order, up to ``max_pages``.
    """

    def __init__(self, transport: Transport, policy: Optional[PolicySettings] = None,
                 sleep: Callable[[float], None] = time.sleep,
                 rng: Callable[[], float] = random.random):
        self.transport = transport
        self.policy = policy or PolicySettings()
        self._sleep = sleep
        self._rng = rng

    def execute(self, spec: RequestSpec, session: SessionHandle, parse_page: PageParser,
                next_spec: Optional[NextSpec] = None,
                cancel: Optional[threading.Event] = None) -> PagedResult:
        """Run a (possibly paged) call and merge its records.

        Args:
            spec: request for the first page
            session: session handle for the vendor identity
            parse_page: returns the page's records and the next cursor
                (None or empty when there are no more pages)
            next_spec: builds the spec for a cursor; defaults to
                ``RequestSpec.with_cursor``
            cancel: checked between pages and during backoff waits

        Returns:
            PagedResult with records in cursor order, de-duplicated by
            identity, and pages/requests/attempts in its metadata

        Raises:
            PaginationLoopError: page limit exceeded or a cursor repeated
            DispatchCancelledError: ``cancel`` was set; partial pages are dropped
        """
        vendor = session.config.vendor
        build_next = next_spec or RequestSpec.with_cursor
        result = PagedResult(metadata={'pages': 0, 'requests': 0, 'attempts': 0, 'reauthentications': 0})
        seen_cursors = {spec.cursor} if spec.cursor else set()
        current = spec

        while True:
            self._check_cancelled(cancel, current)
            response, stats = self._send(current, session, cancel)
            result.metadata['requests'] += 1
            result.metadata['attempts'] += stats.attempts
            result.metadata['reauthentications'] += stats.reauthentications

            try:
                records, cursor = parse_page(response, current)
            except StorageCollectorError as e:
                raise e.with_context(vendor, current.operation)

            result.metadata['pages'] += 1
            result.extend(records)

            if not current.paged or not cursor:
                break
            if cursor in seen_cursors:
                raise PaginationLoopError(result.metadata['pages'], cursor, 'cursor repeated').with_context(
                    vendor, current.operation)
            if result.metadata['pages'] >= self.policy.max_pages:
                raise PaginationLoopError(result.metadata['pages'], cursor).with_context(
                    vendor, current.operation)
            seen_cursors.add(cursor)
            LOG.debug(f"{vendor} {current.operation}: page {result.metadata['pages']} done, next cursor {cursor}")
            current = build_next(current, cursor)

        LOG.debug(f"{vendor} {spec.operation}: {len(result)} records in {result.metadata['pages']} pages "
                  f"({result.metadata['attempts']} attempts)")
        return result

    def send(self, spec: RequestSpec, session: SessionHandle,
             cancel: Optional[threading.Event] = None) -> RawResponse:
        """Send a single request with retry and re-authentication."""
        response, _ = self._send(spec, session, cancel)
        return response

    def _send(self, spec: RequestSpec, handle: SessionHandle,
              cancel: Optional[threading.Event]) -> Tuple[RawResponse, RetryStats]:
        config = handle.config
        retry = self.policy.retry
        timeout = config.request_timeout or self.policy.request_timeout
        url = spec.url()
        stats = RetryStats()

        while True:
            stats.attempts += 1
            try:
                session = handle.current()
                response = self.transport.send(
                    spec.method, url,
                    headers=spec.request_headers(session.headers),
                    body=spec.body,
                    timeout=timeout,
                    auth=session.auth,
                    cookies=session.cookies or None,
                )
            except TransportError as e:
                if not e.retryable:
                    raise e.with_context(config.vendor, spec.operation)
                error: BaseException = e
            else:
                if response.ok:
                    if response.cookies:
                        session.cookies.update(response.cookies)
                    return response, stats

                if is_auth_status(response.status_code):
                    if stats.reauthentications:
                        raise AuthRejectedError(
                            f"{spec.method} {url} rejected with {response.status_code} after re-authentication",
                            vendor=config.vendor, operation=spec.operation)
                    stats.reauthentications += 1
                    LOG.info(f"{config.vendor} {spec.operation}: got {response.status_code}, re-authenticating once")
                    handle.reauthenticate(session)
                    continue

                if not is_transient_status(response.status_code):
                    raise HttpStatusError(response.status_code, url, response.text[:500]).with_context(
                        config.vendor, spec.operation)
                error = HttpStatusError(response.status_code, url, response.text[:500])

            stats.transient_failures += 1
            stats.last_error = error
            if stats.transient_failures >= retry.max_attempts:
                LOG.error(f"{config.vendor} {spec.operation}: giving up after {stats.attempts} attempts: {error}")
                raise RetriesExhaustedError(stats.attempts, error).with_context(config.vendor, spec.operation)

            delay = backoff_delay(retry, stats.transient_failures - 1, self._rng)
            LOG.warning(f"{config.vendor} {spec.operation}: attempt {stats.attempts} failed ({error}), "
                        f"retrying in {delay:.2f}s")
            self._wait(delay, cancel, spec)
            stats.total_delay += delay

    def _wait(self, delay: float, cancel: Optional[threading.Event], spec: RequestSpec) -> None:
        if cancel is not None:
            if cancel.wait(delay):
                raise DispatchCancelledError(f"{spec.operation} cancelled during backoff", operation=spec.operation)
        else:
            self._sleep(delay)

    @staticmethod
    def _check_cancelled(cancel: Optional[threading.Event], spec: RequestSpec) -> None:
        if cancel is not None and cancel.is_set():
            raise DispatchCancelledError(f"{spec.operation} cancelled", operation=spec.operation)
