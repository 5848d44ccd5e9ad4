"""Test suite for the Jira sync client."""
