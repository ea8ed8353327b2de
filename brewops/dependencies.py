from fastapi import Request

from brewops.config import settings
from brewops.services.package_types import PackageVolumeTable


def get_package_table(request: Request) -> PackageVolumeTable:
    return request.app.state.package_table


def get_actor(request: Request) -> str:
    actor = request.headers.get('x-user-email')
    if actor and actor.strip():
        return actor.strip()
    return settings.default_actor
