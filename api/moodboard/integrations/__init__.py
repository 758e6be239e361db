"""Third-party data source integrations (OAuth connections and importers)."""
