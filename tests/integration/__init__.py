"""Integration test package.

These tests run the trial processor against a temporary SQLite survey
database, with the remote analysis service replaced by an httpx mock
transport.  They need no network access.
"""
