"""
Lovebeat

A dead man's switch for services: processes report beats, Lovebeat
raises alerts when the beats stop coming.
"""

__version__ = "0.1.0"
