"""Classification and decoding of GitHub API responses."""

import json
from typing import Any, TypeVar

import httpx
from pydantic import TypeAdapter, ValidationError

from autoprotector.errors import (
    ClientResponseError,
    ResponseDecodeError,
    ServerResponseError,
)

T = TypeVar("T")

SERVICE = "github"


def decode_response(response: httpx.Response, response_model: type[T] | None = None) -> T | Any:
    """Raise typed errors for non-success responses, decode JSON otherwise.

    An empty body decodes as ``{}``: GitHub answers some calls without a
    body, which is not valid JSON but means "nothing further to report".
    """
    status = response.status_code
    if 400 <= status < 500:
        raise ClientResponseError(SERVICE, status, str(response.request.url), response.text)
    if status >= 500:
        raise ServerResponseError(SERVICE, status, str(response.request.url), response.text)

    content = response.content or b"{}"
    try:
        data = json.loads(content)
    except ValueError as exc:
        raise ResponseDecodeError(SERVICE, f"response body is not JSON: {exc}") from exc

    if response_model is None:
        return data
    try:
        return TypeAdapter(response_model).validate_python(data)
    except ValidationError as exc:
        raise ResponseDecodeError(
            SERVICE, f"unexpected response shape for {response_model!r}: {exc}",
        ) from exc
