"""Chapter record store adapters.

Services depend on ``AbstractChapterRepository``; the in-memory
implementation backs the API by default and in tests.
"""
