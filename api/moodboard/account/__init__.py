"""Account settings, usage and activity."""
