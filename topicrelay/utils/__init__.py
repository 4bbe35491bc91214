"""Utilities shared by the relay modules."""
from __future__ import annotations
