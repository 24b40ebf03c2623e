"""Filesystem helpers shared by the stores and the catalog importer."""

from competency_engine.utils.fs import atomic_write, read_text_if_exists

__all__ = ["atomic_write", "read_text_if_exists"]
