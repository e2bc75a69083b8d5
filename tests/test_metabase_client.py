#!/usr/bin/env python3
"""
Unit tests for the Metabase directory backend.

The HTTP transport is replaced with a mock so most of these tests check
endpoint selection, payload mapping and cursor handling only. The last case
runs the real transport over a mocked connection up to the connector.
"""

import os
import sys
import unittest
from unittest.mock import Mock, patch

# Add the project directory to the path so we can import our modules
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from access_sync.client.base import DirectoryAPIError
from access_sync.client.metabase import MetabaseClient
from access_sync.client.transport import HTTPResult
from access_sync.connector import Connector
from access_sync.connector.errors import BackendError
from access_sync.models import CreateUserRequest, Membership, PageOptions, RateLimitDescription


class TestMetabaseClient(unittest.TestCase):
    """Test cases for MetabaseClient."""

    def setUp(self):
        self.config = {
            'name': 'metabase',
            'base_url': 'https://metabase.example.com',
            'auth': {'method': 'api_key', 'api_key': 'mb_key'},
        }
        self.transport = Mock()
        self.client = MetabaseClient(self.config, transport=self.transport)

    def respond(self, data, rate_limit=None, status=200):
        self.transport.request.return_value = HTTPResult(status, data, rate_limit)

    def test_list_users_first_page(self):
        rate_limit = RateLimitDescription(limit=100, remaining=99)
        self.respond({
            'data': [
                {'id': 1, 'email': 'ana@example.com', 'first_name': 'Ana', 'last_name': 'Gomez', 'is_active': True},
                {'id': 2, 'email': 'bo@example.com', 'first_name': None, 'last_name': None, 'is_active': False},
            ],
            'total': 5,
            'limit': 2,
            'offset': 0,
        }, rate_limit)

        result = self.client.list_users(PageOptions(page_size=2, page_token=''))

        self.transport.request.assert_called_once_with(
            'GET', '/api/user', query={'limit': 2, 'offset': 0, 'include_deactivated': 'true'})
        page = result.value
        self.assertEqual([u.id for u in page.users], [1, 2])
        self.assertEqual(page.users[1].first_name, '')
        self.assertFalse(page.users[1].is_active)
        self.assertEqual(page.next_page_token, '2')
        self.assertIs(result.rate_limit, rate_limit)

    def test_list_users_last_page(self):
        self.respond({'data': [{'id': 5, 'email': 'e@example.com'}], 'total': 5})

        result = self.client.list_users(PageOptions(page_size=2, page_token='4'))

        self.assertEqual(self.transport.request.call_args[1]['query']['offset'], 4)
        self.assertEqual(result.value.next_page_token, '')

    def test_list_users_unpaged_response(self):
        self.respond([{'id': 1, 'email': 'a@example.com'}, {'id': 2, 'email': 'b@example.com'}])

        result = self.client.list_users(PageOptions())

        self.assertEqual(len(result.value.users), 2)
        self.assertEqual(result.value.next_page_token, '')

    def test_list_users_rejects_bad_cursor(self):
        for token in ('abc', '-1', ' 2', '٣'):
            with self.assertRaises(DirectoryAPIError):
                self.client.list_users(PageOptions(page_token=token))

        self.transport.request.assert_not_called()

    def test_list_groups(self):
        self.respond([
            {'id': 1, 'name': 'All Users', 'member_count': 3},
            {'id': 2, 'name': 'Administrators', 'member_count': 1},
        ])

        result = self.client.list_groups()

        self.transport.request.assert_called_once_with('GET', '/api/permissions/group')
        self.assertEqual([g.name for g in result.value], ['All Users', 'Administrators'])
        self.assertEqual(result.value[0].member_count, 3)

    def test_list_memberships(self):
        self.respond({
            12: [{'membership_id': 101, 'group_id': 3, 'user_id': 12, 'is_group_manager': False}],
            '13': [{'membership_id': 102, 'group_id': 3, 'user_id': 13, 'is_group_manager': True}],
        })

        result = self.client.list_memberships()

        self.assertEqual(set(result.value), {'12', '13'})
        self.assertEqual(result.value['12'], [Membership(group_id=3, user_id=12, membership_id=101)])
        self.assertTrue(result.value['13'][0].is_group_manager)

    def test_add_user_to_group(self):
        self.respond([])

        result = self.client.add_user_to_group(Membership(group_id=3, user_id=12, is_group_manager=True))

        self.transport.request.assert_called_once_with(
            'POST', '/api/permissions/membership',
            body={'group_id': 3, 'user_id': 12, 'is_group_manager': True})
        self.assertIsNone(result.value)

    def test_remove_user_from_group(self):
        self.respond({})

        self.client.remove_user_from_group(101)

        self.transport.request.assert_called_once_with('DELETE', '/api/permissions/membership/101')

    def test_enable_user(self):
        self.respond({'id': 12, 'email': 'j@example.com', 'is_active': True})

        result = self.client.update_user_active_status('12', True)

        self.transport.request.assert_called_once_with('PUT', '/api/user/12/reactivate')
        self.assertTrue(result.value.is_active)
        self.assertEqual(result.value.email, 'j@example.com')

    def test_disable_user(self):
        self.respond({'success': True})

        result = self.client.update_user_active_status('12', False)

        self.transport.request.assert_called_once_with('DELETE', '/api/user/12')
        self.assertEqual(result.value.id, 12)
        self.assertFalse(result.value.is_active)

    def test_user_id_is_path_escaped(self):
        self.respond({'success': True})

        self.client.update_user_active_status('1/../2', False)

        self.transport.request.assert_called_once_with('DELETE', '/api/user/1%2F..%2F2')

    def test_create_user(self):
        self.respond({'id': 7, 'email': 'new@example.com', 'first_name': 'New', 'last_name': 'User'})

        result = self.client.create_user(CreateUserRequest(
            email='new@example.com', first_name='New', last_name='User', password='S3cret!pass'))

        self.transport.request.assert_called_once_with('POST', '/api/user', body={
            'email': 'new@example.com', 'first_name': 'New', 'last_name': 'User', 'password': 'S3cret!pass'})
        self.assertEqual(result.value.id, 7)

    def test_paid_plan_follows_version(self):
        self.respond({'version': {'tag': 'v1.50.2'}})
        result = self.client.get_version()

        self.transport.request.assert_called_once_with('GET', '/api/session/properties')
        self.assertEqual(result.value.tag, 'v1.50.2')
        self.assertTrue(self.client.is_paid_plan())

        self.respond({'version': {'tag': 'v0.50.2'}})
        self.client.get_version()
        self.assertFalse(self.client.is_paid_plan())

    def test_plan_check_fetches_version_once(self):
        self.respond({'version': {'tag': 'v1.49.0'}})

        self.assertTrue(self.client.is_paid_plan())
        self.assertTrue(self.client.is_paid_plan())

        self.transport.request.assert_called_once_with('GET', '/api/session/properties')

    def test_plan_check_propagates_version_failure(self):
        self.transport.request.side_effect = DirectoryAPIError("HTTP 503: Service Unavailable", status_code=503)

        with self.assertRaises(DirectoryAPIError):
            self.client.is_paid_plan()

    def test_configured_plan_wins(self):
        config = dict(self.config, paid_plan=True)
        client = MetabaseClient(config, transport=self.transport)
        self.respond({'version': {'tag': 'v0.49.0'}})

        client.get_version()

        self.assertTrue(client.is_paid_plan())

    def test_errors_propagate(self):
        rate_limit = RateLimitDescription(limit=10, remaining=0, status='overlimit')
        self.transport.request.side_effect = DirectoryAPIError("HTTP 429: Too Many Requests",
                                                               status_code=429, rate_limit=rate_limit)

        with self.assertRaises(DirectoryAPIError) as ctx:
            self.client.list_groups()

        self.assertIs(ctx.exception.rate_limit, rate_limit)

    def test_close_closes_transport(self):
        with self.client:
            pass

        self.transport.close.assert_called_once_with()


class TestConnectorOverHTTP(unittest.TestCase):
    """Transport failures reach the connector as wrapped backend errors."""

    def setUp(self):
        self.connection = Mock()
        patcher = patch('access_sync.client.transport.HTTPSConnection', return_value=self.connection)
        patcher.start()
        self.addCleanup(patcher.stop)

        self.config = {
            'name': 'metabase',
            'base_url': 'https://metabase.example.com',
            'auth': {'method': 'session', 'username': 'svc@example.com', 'password': 'pw'},
        }

    def connector(self):
        return Connector(MetabaseClient(self.config, {'max_retries': 0}))

    def test_login_failure_is_wrapped(self):
        self.connection.request.side_effect = ConnectionRefusedError('refused')

        with self.assertRaises(BackendError) as ctx:
            self.connector().groups.list()

        self.assertIn('failed to list groups', str(ctx.exception))
        self.assertIn('Connection error to metabase', str(ctx.exception))

    def test_undecodable_listing_is_wrapped(self):
        self.config['auth'] = {'method': 'api_key', 'api_key': 'mb_key'}
        response = Mock(status=200, reason='OK')
        response.read.return_value = b'\xff\xfe[]'
        response.getheaders.return_value = []
        self.connection.getresponse.return_value = response

        with self.assertRaises(BackendError) as ctx:
            self.connector().groups.list()

        self.assertIn('failed to list groups', str(ctx.exception))


if __name__ == '__main__':
    unittest.main()
