"""Query, cache and statistics services."""
