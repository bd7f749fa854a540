"""Publish pre-rendered pages to a SharePoint site through the CLI for Microsoft 365."""

__version__ = "0.1.0"
