"""Request-scoped access to the service stack built at startup."""

from fastapi import Request

from favmatch.services.container import Services


def get_services(request: Request) -> Services:
    return request.app.state.services
