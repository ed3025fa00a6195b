"""
Authentication application.

Provides the email-based User model. The user's subscription entitlement
is stored on the same row and written only by the payments app.

Usage:
    from authentication.models import User, SubscriptionPlan
"""
