"""
Kbot Applications Package.

Contains:
- kbot: bot lifecycle controller and metrics/probe server
"""
