"""Configuration helpers for the Moonbridge daemon."""

from . import logging, settings  # noqa: F401  # pyright: ignore[reportUnusedImport]
