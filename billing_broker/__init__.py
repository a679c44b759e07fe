"""Subscription billing broker with an in-memory provider simulator."""
