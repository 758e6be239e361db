"""Supabase authentication: JWT verification, profiles and auth proxy routes."""
