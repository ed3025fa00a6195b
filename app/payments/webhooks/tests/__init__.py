"""Tests for webhook endpoints."""
