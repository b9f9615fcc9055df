"""
API Dependencies

FastAPI dependencies handing out the services built at startup.
"""

from fastapi import Request

from todonote.services.container import ServiceContainer


def get_services(request: Request) -> ServiceContainer:
    """Service container stored on the application state by the lifespan."""
    return request.app.state.services
