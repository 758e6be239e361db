"""Stripe subscription billing."""
