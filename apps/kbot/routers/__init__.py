"""Routers for the metrics/probe server."""
