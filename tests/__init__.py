"""
docsync Test Suite.

This package contains:
- unit/: Unit tests (no network, temporary SQLite files)
- integration/: Integration tests (sync engine and webhook receiver
  against an in-process mock of the remote API)
"""
