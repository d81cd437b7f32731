"""Shared FastAPI dependencies."""

from fastapi import Request

from lovebeat.heartbeat import Monitor


def get_monitor(request: Request) -> Monitor:
    """The monitor started by the application lifespan."""
    return request.app.state.monitor
