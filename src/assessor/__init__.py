"""Automated security, privacy and ethics assessments of AI language models."""

from __future__ import annotations

__version__ = "0.1.0"
