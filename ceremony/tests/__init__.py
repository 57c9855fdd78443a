"""
ceremony.tests
--------------
Test package for the ceremony client.

Engines used here are toys: they never touch elliptic-curve math and only
record how the coordinator calls them.
"""

from __future__ import annotations

__all__: tuple[str, ...] = ()
