"""Response cache and invalidation fan-out."""
