"""Request-scoped value objects for the download pipeline."""
