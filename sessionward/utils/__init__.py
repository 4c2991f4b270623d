"""Shared utilities."""

from sessionward.utils.locks import ReadWriteLock

__all__ = ['ReadWriteLock']
