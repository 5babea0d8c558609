"""Shared infrastructure: exceptions, HTTP client, async and time helpers, env config."""
