"""
Tests for the health check endpoint.
"""

from unittest.mock import patch

from django.db import DatabaseError


class TestHealthCheck:
    def test_healthy(self, client, db):
        response = client.get("/health/")

        assert response.status_code == 200
        assert response.json() == {
            "status": "healthy",
            "database": "connected",
            "gateways": ["card_checkout", "invoice_qr"],
        }

    def test_database_down(self, client, db):
        with patch("core.views.connection") as connection:
            connection.cursor.side_effect = DatabaseError("gone")
            response = client.get("/health/")

        assert response.status_code == 503
        assert response.json()["database"] == "disconnected"
        assert response.json()["status"] == "unhealthy"
