"""
API module for the REST interface.
"""

from .rest_api import MinervaRestAPI, Principal, get_principal, require_roles

__all__ = [
    "MinervaRestAPI",
    "Principal",
    "get_principal",
    "require_roles",
]
