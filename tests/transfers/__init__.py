"""
Tests for Stock Transfers.

This package contains tests for:
- Transfer order value object and lifecycle
- Balanced stock allocator
- Transfer policy service
- Transfer order repository
"""
