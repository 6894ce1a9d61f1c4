"""
EntryLog Node package initializer

Keep this module lightweight. Importing the package must not pull in FastAPI
or touch the filesystem, so the CLI and tests can import submodules freely.
"""

__all__ = []
