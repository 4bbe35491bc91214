"""Fixtures and helpers for tests in tests/*."""
from __future__ import annotations
