"""Kbot service: lifecycle controller and metrics/probe server."""
