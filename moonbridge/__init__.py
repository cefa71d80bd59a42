"""Moonbridge package initialisation."""

__version__ = "1.0.0"

import logging

logger = logging.getLogger(__name__)
