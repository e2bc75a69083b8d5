"""
Access Sync - Reconcile directory identity and access data into a resource/entitlement/grant graph.

This package provides a stateless adapter that reads users, groups and group
memberships from a directory-style REST service, exposes them as normalized
resources, entitlements and grants, and applies membership and account
changes back to the service.
"""

__version__ = "1.0.0"
__author__ = "Access Sync Team"
