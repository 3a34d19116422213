"""Request-scoped access to the service graph."""

from fastapi import Request

from creditwise.services import Services


def get_services(request: Request) -> Services:
    return request.app.state.services
