"""Tests for gateway clients and the token cache."""
