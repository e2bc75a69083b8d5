#!/usr/bin/env python3
"""
Unit tests for resource mapping, id parsing and entitlement resolution.
"""

import os
import sys
import unittest

# Add the project directory to the path so we can import our modules
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from access_sync.connector.errors import ResourceMappingError, UnsupportedEntitlementError, ValidationError
from access_sync.connector.resources import (
    Entitlement,
    PermissionKind,
    ResourceId,
    format_resource_id,
    group_resource,
    new_grant,
    parse_numeric_id,
    permission_for,
    resource_types,
    user_resource,
)
from access_sync.models import Group, User


class TestResourceMapping(unittest.TestCase):

    def test_user_resource(self):
        resource = user_resource(User(id=12, email='jd@example.com', first_name='John', last_name='Doe'))

        self.assertEqual(str(resource.id), 'user:12')
        self.assertEqual(resource.display_name, 'John Doe')
        self.assertEqual(resource.status, 'enabled')
        self.assertEqual(resource.emails, ('jd@example.com',))
        self.assertEqual(resource.profile, {
            'user_id': '12',
            'email': 'jd@example.com',
            'first_name': 'John',
            'last_name': 'Doe',
            'is_active': True,
        })

    def test_user_display_name_falls_back_to_email(self):
        resource = user_resource(User(id=1, email='only@example.com', first_name='', last_name=''))

        self.assertEqual(resource.display_name, 'only@example.com')

    def test_user_with_single_name_part(self):
        resource = user_resource(User(id=1, email='x@example.com', first_name='', last_name='Doe'))

        self.assertEqual(resource.display_name, 'Doe')

    def test_user_without_email(self):
        resource = user_resource(User(id=1, first_name='Ann', is_active=False))

        self.assertEqual(resource.emails, ())
        self.assertEqual(resource.status, 'disabled')

    def test_group_resource(self):
        resource = group_resource(Group(id=3, name='Developers', member_count=4))

        self.assertEqual(resource.id, ResourceId('group', '3'))
        self.assertEqual(resource.display_name, 'Developers')
        self.assertEqual(resource.profile['member_count'], 4)

    def test_missing_ids_fail_mapping(self):
        with self.assertRaises(ResourceMappingError) as ctx:
            group_resource(Group(id=None, name='Broken'))
        self.assertEqual(str(ctx.exception), 'group is missing an id')

        with self.assertRaises(ResourceMappingError):
            format_resource_id(True, 'user')

    def test_new_grant_id(self):
        grant = new_grant(ResourceId('group', '3'), PermissionKind.MANAGER, ResourceId('user', '12'))

        self.assertEqual(grant.entitlement.id, 'group:3:manager')
        self.assertEqual(grant.id, 'group:3:manager:user:12')

    def test_resource_types(self):
        self.assertEqual([t.id for t in resource_types()], ['user', 'group'])


class TestIdParsing(unittest.TestCase):

    def test_accepts_plain_digits(self):
        self.assertEqual(parse_numeric_id('12', 'user'), 12)
        self.assertEqual(parse_numeric_id('007', 'user'), 7)
        self.assertEqual(parse_numeric_id(5, 'group'), 5)

    def test_rejects_malformed(self):
        for value in ('', ' 12', '12 ', '+12', '-1', '1_000', '1.5', 'abc', '١٢', None, True, -3):
            with self.assertRaises(ValidationError, msg=repr(value)):
                parse_numeric_id(value, 'user')

    def test_error_names_the_kind(self):
        with self.assertRaises(ValidationError) as ctx:
            parse_numeric_id('x', 'group')

        self.assertEqual(str(ctx.exception), "invalid group id 'x'")


class TestPermissionResolution(unittest.TestCase):

    def entitlement(self, entitlement_id, permission=None):
        return Entitlement(id=entitlement_id, resource_id=ResourceId('group', '1'), permission=permission)

    def test_suffixes(self):
        self.assertIs(permission_for(self.entitlement('group:1:member')), PermissionKind.MEMBER)
        self.assertIs(permission_for(self.entitlement('group:1:manager')), PermissionKind.MANAGER)

    def test_bare_kinds(self):
        self.assertIs(permission_for(self.entitlement('member')), PermissionKind.MEMBER)
        self.assertIs(permission_for(self.entitlement('manager')), PermissionKind.MANAGER)

    def test_structured_kind_wins(self):
        entitlement = self.entitlement('group:1:member', PermissionKind.MANAGER)

        self.assertIs(permission_for(entitlement), PermissionKind.MANAGER)

    def test_unsupported(self):
        for entitlement_id in ('group:1:owner', 'group:1:membership', 'nonmember', ''):
            with self.assertRaises(UnsupportedEntitlementError, msg=entitlement_id):
                permission_for(self.entitlement(entitlement_id))


if __name__ == '__main__':
    unittest.main()
