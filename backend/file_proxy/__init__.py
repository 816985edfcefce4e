"""Authenticated SharePoint file download proxy."""

__version__ = "1.0.0"
