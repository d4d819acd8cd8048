"""Per-request labels attached to slow-query and slow-request log lines."""

from __future__ import annotations

from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator

from fastapi.routing import APIRoute
from starlette.requests import Request


current_endpoint: ContextVar[str] = ContextVar('current_endpoint', default='background')
current_organization: ContextVar[int | None] = ContextVar('current_organization', default=None)


def describe_context() -> str:
    organization_id = current_organization.get()
    if organization_id is None:
        return f'endpoint={current_endpoint.get()}'
    return f'endpoint={current_endpoint.get()} org={organization_id}'


@contextmanager
def organization_scope(organization_id: int) -> Iterator[None]:
    token = current_organization.set(int(organization_id))
    try:
        yield
    finally:
        current_organization.reset(token)


class EndpointNameRoute(APIRoute):
    """Labels every request with ``METHOD /path/template`` for the duration of the handler."""

    def get_route_handler(self):
        route_handler = super().get_route_handler()
        label = f"{','.join(sorted(self.methods or []))} {self.path}"

        async def labelled_handler(request: Request):
            token = current_endpoint.set(label)
            try:
                return await route_handler(request)
            finally:
                current_endpoint.reset(token)

        return labelled_handler
