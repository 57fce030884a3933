"""Remote endpoint transport and background worker.

The remote side is a spreadsheet-backed web endpoint that answers
``GET ?action=fetchAll`` with a JSON snapshot and accepts one mutation event per
``POST``. :class:`HttpTransport` wraps both calls with :mod:`requests`;
:class:`AsyncWorker` runs any blocking call on a ``QThread``.
"""

import json
import logging
from typing import Any, Callable, Dict, Optional

import requests
from PySide6 import QtCore

from ..status import status

POST_HEADERS: Dict[str, str] = {'Content-Type': 'text/plain;charset=utf-8'}

# Shared HTTP session to reuse connections across pulls and pushes
_cached_session: Optional[requests.Session] = None


def get_session() -> requests.Session:
    """Return the shared :class:`requests.Session`, creating it on first use."""
    global _cached_session
    if _cached_session is None:
        logging.debug('Creating HTTP session for the remote endpoint.')
        _cached_session = requests.Session()
    return _cached_session


def clear_session() -> None:
    """Close and drop the shared HTTP session."""
    global _cached_session
    if _cached_session is not None:
        _cached_session.close()
    _cached_session = None


def _verify_endpoint(endpoint: str) -> str:
    if not endpoint or not endpoint.strip():
        raise status.EndpointNotConfiguredException
    return endpoint.strip()


class HttpTransport:
    """Blocking HTTP calls against the remote endpoint."""

    def fetch(self, endpoint: str) -> Dict[str, Any]:
        """Fetch the full remote snapshot.

        Args:
            endpoint: Remote endpoint URL.

        Returns:
            dict: The decoded snapshot object.

        Raises:
            status.EndpointNotConfiguredException: If no endpoint is set.
            status.ServiceUnavailableException: On network errors or a non-OK status.
            status.SnapshotInvalidException: If the body is not a JSON object.
        """
        url = _verify_endpoint(endpoint)
        logging.debug(f'Fetching remote snapshot from {url}')
        try:
            response = get_session().get(url, params={'action': 'fetchAll'})
            response.raise_for_status()
        except requests.exceptions.RequestException as ex:
            raise status.ServiceUnavailableException(f'Snapshot request failed: {ex}') from ex

        try:
            data = response.json()
        except ValueError as ex:
            raise status.SnapshotInvalidException(f'Response is not valid JSON: {ex}') from ex
        if not isinstance(data, dict):
            raise status.SnapshotInvalidException(
                f'Expected a JSON object, got {type(data).__name__}.'
            )
        return data

    def post(self, endpoint: str, payload: Dict[str, Any]) -> None:
        """Send one mutation event. The response body is never read.

        Raises:
            status.EndpointNotConfiguredException: If no endpoint is set.
            status.ServiceUnavailableException: On network errors or a non-OK status.
        """
        url = _verify_endpoint(endpoint)
        body = json.dumps(payload, ensure_ascii=False).encode('utf-8')
        try:
            response = get_session().post(url, data=body, headers=POST_HEADERS)
            response.raise_for_status()
        except requests.exceptions.RequestException as ex:
            raise status.ServiceUnavailableException(
                f'Push of "{payload.get("type")}" failed: {ex}'
            ) from ex


class AsyncWorker(QtCore.QThread):
    """
    Generic worker thread for blocking functions.

    The outcome is kept on the worker (``result`` / ``error``) as well as emitted,
    so callers that join the thread do not depend on a running event loop.

    Signals:
        resultReady (object): Emitted with the function's result on success.
        errorOccurred (object): Emitted with the exception on failure.
    """
    resultReady = QtCore.Signal(object)
    errorOccurred = QtCore.Signal(object)

    def __init__(self, func: Callable[..., Any], *args: Any, **kwargs: Any) -> None:
        super().__init__()
        self.func = func
        self.args = args
        self.kwargs = kwargs

        self.result: Any = None
        self.error: Optional[Exception] = None

    def run(self) -> None:
        try:
            self.result = self.func(*self.args, **self.kwargs)
        except Exception as ex:
            self.error = ex
            self.errorOccurred.emit(ex)
            return
        self.resultReady.emit(self.result)
