"""Rate limit counter stores.

The HTTP layer talks to the ``RateLimitStore`` abstraction. Redis is the
normal backend so every server instance shares one counter per client; the
in-memory store is the last-resort, per-process fallback.
"""
