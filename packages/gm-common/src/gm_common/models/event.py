"""
Completed request event models for gateway-metrics.

Defines the Pydantic models describing one finished request or stream
session as handed to the event recorder by the request pipeline. Every
identity field is optional; the recorder decides what an absent value means.
"""

from __future__ import annotations

from typing import Union

from pydantic import BaseModel, Field

# Query values are a string, or a list of strings for repeated parameters.
QueryValue = Union[str, list[str]]


class ServiceRef(BaseModel):
    """The service a request was proxied to."""

    name: str | None = None
    host: str | None = None

    @property
    def identity(self) -> str | None:
        return self.name or self.host


class RouteRef(BaseModel):
    """The route a request matched."""

    name: str | None = None
    id: str | None = None

    @property
    def identity(self) -> str | None:
        return self.name or self.id


class ConsumerRef(BaseModel):
    """The authenticated consumer of a request."""

    username: str | None = None
    id: str | None = None


class Latencies(BaseModel):
    """Request latencies in milliseconds.

    Attributes:
        request: Total time spent serving the request.
        upstream: Time spent waiting on the upstream service.
        internal: Time spent inside the gateway itself.
    """

    request: float | None = None
    upstream: float | None = None
    internal: float | None = None


class CompletedEvent(BaseModel):
    """One finished request or session.

    Sizes are kept as reported (``int``, ``float`` or ``str``) because the
    pipeline does not guarantee they are numeric.

    Attributes:
        service: Proxied service, if one was resolved.
        route: Matched route, if any.
        consumer: Authenticated consumer, if any.
        request_size: Bytes received from the client.
        response_size: Bytes sent to the client.
        response_status: Response status code.
        latencies: Request latencies in milliseconds.
        raw_query_params: Query arguments of the request.
        raw_path: Request path, without the query string.
    """

    service: ServiceRef | None = None
    route: RouteRef | None = None
    consumer: ConsumerRef | None = None
    request_size: int | float | str | None = None
    response_size: int | float | str | None = None
    response_status: int | str
    latencies: Latencies = Field(default_factory=Latencies)
    raw_query_params: dict[str, QueryValue] = Field(default_factory=dict)
    raw_path: str | None = None
