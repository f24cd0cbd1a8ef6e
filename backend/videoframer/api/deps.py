from typing import Annotated

from fastapi import Depends, Request

from videoframer.runtime import Runtime


def get_runtime(request: Request) -> Runtime:
    """Runtime built during application startup."""
    return request.app.state.runtime


RuntimeDep = Annotated[Runtime, Depends(get_runtime)]


def get_client_key(request: Request) -> str:
    return request.client.host if request.client else "unknown"


def enforce_rate_limit(
    runtime: RuntimeDep,
    client_key: Annotated[str, Depends(get_client_key)],
) -> None:
    """Gate job-creating endpoints; raises RateLimitExceededError when over budget."""
    runtime.rate_limiter.check(client_key)


RateLimited = Depends(enforce_rate_limit)
