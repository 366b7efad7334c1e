"""Storage backends."""

from dual_storage.storage.baas import BaasContentStorage
from dual_storage.storage.base import ContentStorage
from dual_storage.storage.memory import InMemoryContentStorage
from dual_storage.storage.postgres import PostgresContentStorage

__all__ = [
    "BaasContentStorage",
    "ContentStorage",
    "InMemoryContentStorage",
    "PostgresContentStorage",
]
