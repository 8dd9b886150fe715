from fastapi import Request

from speechcoach.core.bootstrap import TherapyServices


def get_services(request: Request) -> TherapyServices:
    return request.app.state.services
