#!/usr/bin/env python3
"""
Unit tests for annotations and the backend call envelope.
"""

import os
import sys
import unittest

# Add the project directory to the path so we can import our modules
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from access_sync.client.base import DirectoryAPIError
from access_sync.connector.annotations import Annotations
from access_sync.connector.envelope import ActionResult, backend_call, page_token_or_start
from access_sync.connector.errors import BackendError
from access_sync.models import APIResult, RateLimitDescription


class TestAnnotations(unittest.TestCase):

    def test_none_is_ignored(self):
        annotations = Annotations().with_rate_limiting(None)

        self.assertEqual(len(annotations), 0)
        self.assertFalse(annotations.contains_rate_limit())

    def test_latest_rate_limit_replaces_older(self):
        first = RateLimitDescription(limit=10, remaining=5)
        second = RateLimitDescription(limit=10, remaining=4)
        annotations = Annotations(['other'])

        annotations.with_rate_limiting(first).with_rate_limiting(second)

        self.assertEqual(annotations, ['other', second])
        self.assertIs(annotations.rate_limit, second)


class TestBackendCall(unittest.TestCase):

    def test_success_attaches_rate_limit(self):
        rate_limit = RateLimitDescription(limit=100, remaining=1)
        annotations = Annotations()

        value = backend_call(annotations, "failed to list groups", lambda: APIResult(['g'], rate_limit))

        self.assertEqual(value, ['g'])
        self.assertIs(annotations.rate_limit, rate_limit)

    def test_failure_attaches_rate_limit_and_wraps(self):
        rate_limit = RateLimitDescription(limit=100, remaining=0)
        annotations = Annotations()
        cause = DirectoryAPIError("boom", status_code=429, rate_limit=rate_limit)

        def fail():
            raise cause

        with self.assertRaises(BackendError) as ctx:
            backend_call(annotations, "failed to list groups", fail)

        self.assertEqual(str(ctx.exception), "failed to list groups: boom")
        self.assertIs(ctx.exception.annotations, annotations)
        self.assertIs(annotations.rate_limit, rate_limit)
        self.assertIs(ctx.exception.__cause__, cause)

    def test_failure_without_rate_limit(self):
        annotations = Annotations()

        def fail():
            raise DirectoryAPIError("boom")

        with self.assertRaises(BackendError):
            backend_call(annotations, "failed to list users", fail)

        self.assertEqual(len(annotations), 0)

    def test_other_errors_propagate_unchanged(self):
        def fail():
            raise KeyError('id')

        with self.assertRaises(KeyError):
            backend_call(Annotations(), "failed to list users", fail)


class TestEnvelopeHelpers(unittest.TestCase):

    def test_page_token_or_start(self):
        self.assertEqual(page_token_or_start(None), '')
        self.assertEqual(page_token_or_start(''), '')
        self.assertEqual(page_token_or_start('200'), '200')

    def test_action_result_success(self):
        self.assertTrue(ActionResult({'success': True}, Annotations()).success)
        self.assertFalse(ActionResult({}, Annotations()).success)


if __name__ == '__main__':
    unittest.main()
