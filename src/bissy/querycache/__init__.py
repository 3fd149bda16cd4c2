"""Cached execution of owner-scoped SQL queries against registered datasources."""
