"""Inventory authority client."""
from authority.client import AuthorityUnavailable, InventoryAuthorityClient

__all__ = ['AuthorityUnavailable', 'InventoryAuthorityClient']
