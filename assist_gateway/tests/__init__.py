"""Test suite for the assist_gateway package."""
