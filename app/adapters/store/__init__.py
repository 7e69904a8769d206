"""Shared key-value store adapters.

The Redis handle here backs both the response cache and the rate limit
counters. Everything built on it treats the store as advisory: callers go
through ``with_store_guard`` and fall back to a safe default when the store
is failing or absent.
"""
