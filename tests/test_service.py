"""Contract tests for ChaplaincyTracker.core.service.

The HTTP session is replaced with a mock; no network access is needed.
"""
import json
import unittest
from unittest import mock

import requests

from ChaplaincyTracker.core import service as svc
from ChaplaincyTracker.status import status
from tests.base import BaseTestCase, TEST_ENDPOINT


def make_response(body=None, status_code: int = 200, text: str = None) -> mock.Mock:
    response = mock.Mock()
    response.status_code = status_code
    if status_code >= 400:
        response.raise_for_status.side_effect = requests.exceptions.HTTPError(f'{status_code} Error')
    if text is not None:
        response.json.side_effect = json.JSONDecodeError('Expecting value', text, 0)
    else:
        response.json.return_value = body
    return response


class SessionTests(unittest.TestCase):
    def tearDown(self) -> None:
        svc.clear_session()

    def test_session_is_shared(self):
        self.assertIs(svc.get_session(), svc.get_session())

    def test_clear_session(self):
        first = svc.get_session()
        svc.clear_session()
        self.assertIsNot(svc.get_session(), first)


class HttpTransportTests(BaseTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.session = mock.Mock(spec=requests.Session)
        patcher = mock.patch.object(svc, 'get_session', return_value=self.session)
        patcher.start()
        self.addCleanup(patcher.stop)
        self.http = svc.HttpTransport()

    def test_fetch_requests_full_snapshot(self):
        self.session.get.return_value = make_response({'users': []})
        self.assertEqual(self.http.fetch(TEST_ENDPOINT), {'users': []})
        self.session.get.assert_called_once_with(TEST_ENDPOINT, params={'action': 'fetchAll'})

    def test_fetch_without_endpoint(self):
        with self.assertRaises(status.EndpointNotConfiguredException):
            self.http.fetch('  ')
        self.session.get.assert_not_called()

    def test_fetch_network_error(self):
        self.session.get.side_effect = requests.exceptions.ConnectionError('unreachable')
        with self.assertRaises(status.ServiceUnavailableException):
            self.http.fetch(TEST_ENDPOINT)

    def test_fetch_http_error(self):
        self.session.get.return_value = make_response(status_code=500)
        with self.assertRaises(status.ServiceUnavailableException):
            self.http.fetch(TEST_ENDPOINT)

    def test_fetch_bad_body(self):
        self.session.get.return_value = make_response(text='<html>')
        with self.assertRaises(status.SnapshotInvalidException):
            self.http.fetch(TEST_ENDPOINT)

        self.session.get.return_value = make_response(['users'])
        with self.assertRaises(status.SnapshotInvalidException):
            self.http.fetch(TEST_ENDPOINT)

    def test_post_sends_utf8_text_body(self):
        self.session.post.return_value = make_response({})
        payload = {'type': 'ESTUDOS_BIBLICOS', 'data': {'patientName': 'João'}}
        self.http.post(TEST_ENDPOINT, payload)

        args, kwargs = self.session.post.call_args
        self.assertEqual(args, (TEST_ENDPOINT,))
        self.assertEqual(kwargs['headers'], svc.POST_HEADERS)
        self.assertIn('João'.encode('utf-8'), kwargs['data'])
        self.assertEqual(json.loads(kwargs['data'].decode('utf-8')), payload)

    def test_post_failure(self):
        self.session.post.side_effect = requests.exceptions.Timeout('slow')
        with self.assertRaises(status.ServiceUnavailableException):
            self.http.post(TEST_ENDPOINT, {'type': 'DELETE_STUDY', 'data': {'id': 's1'}})


class AsyncWorkerTests(BaseTestCase):
    def test_result_is_kept(self):
        worker = svc.AsyncWorker(lambda a, b=0: a + b, 1, b=2)
        worker.start()
        self.assertTrue(worker.wait(10000))
        self.assertEqual(worker.result, 3)
        self.assertIsNone(worker.error)

    def test_error_is_kept(self):
        def fail():
            raise RuntimeError('boom')

        worker = svc.AsyncWorker(fail)
        worker.start()
        self.assertTrue(worker.wait(10000))
        self.assertIsInstance(worker.error, RuntimeError)
        self.assertIsNone(worker.result)
