#!/usr/bin/env python3
"""
Test suite for the match scoring service.

All tests run without Redis or a generation gateway:

    python -m pytest tests/ -v

Shared fakes live in tests/mocks/scoring_mocks.py.
"""
