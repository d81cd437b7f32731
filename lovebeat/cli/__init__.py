"""Lovebeat command line interface."""
