"""Lovebeat HTTP API."""
