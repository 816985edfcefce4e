"""Download pipeline stages."""
