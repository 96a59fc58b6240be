"""Data point state storage."""

from .state_store import StateStore, StatePersistence

__all__ = ['StateStore', 'StatePersistence']
