"""Request dependencies shared by the routers."""

from fastapi import Request

from ..services import CommissionService


def get_service(request: Request) -> CommissionService:
    return request.app.state.service
