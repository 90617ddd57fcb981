"""Test suite for Focus-UserCount.

Tests are hermetic: storefront HTTP goes through httpx.MockTransport and
Playwright is replaced by mocks, so nothing leaves the process.

Layout mirrors the usercount/ package: one module per component plus
test_pipeline.py for bootstrap and end-to-end wiring.
"""
