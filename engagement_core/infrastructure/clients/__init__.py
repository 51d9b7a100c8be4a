"""Collaborator adapters"""

from .identity_provider import LocalIdentityProvider, hash_password, verify_password
from .vector_index import HttpVectorIndex, create_vector_index

__all__ = [
    "LocalIdentityProvider",
    "hash_password",
    "verify_password",
    "HttpVectorIndex",
    "create_vector_index",
]
