"""Utility constants and helpers for the Jira sync client."""
