"""Lease and scheduler services for the periodic jobs."""
