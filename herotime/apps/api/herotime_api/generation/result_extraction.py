"""Extract the result image URL from a prediction's output.

The provider returns one of a few shapes, classified into a tagged union:

- ``UrlString``: the output is the URL itself
- ``OutputList``: a non-empty list; only its first element is inspected
- ``UrlHandle``: a file-output object exposing ``url`` (a string attribute,
  a sync or async accessor, or a ``{"url": ...}`` mapping)

Anything else, or an empty resolved URL, is a generic inference failure.
"""

import inspect
from dataclasses import dataclass
from typing import Any, Union

from herotime_api.errors import InferenceError


@dataclass(frozen=True)
class UrlString:
    url: str


@dataclass(frozen=True)
class OutputList:
    first: Any


@dataclass(frozen=True)
class UrlHandle:
    handle: Any


PredictionOutput = Union[UrlString, OutputList, UrlHandle]


def _has_url(value: Any) -> bool:
    if isinstance(value, dict):
        return "url" in value
    return hasattr(value, "url")


def classify_output(output: Any) -> PredictionOutput:
    """Classify raw provider output.

    Raises:
        InferenceError: generic, if the shape is not recognized
    """
    if isinstance(output, str):
        return UrlString(output)
    if isinstance(output, (list, tuple)) and output:
        return OutputList(output[0])
    if output is not None and _has_url(output):
        return UrlHandle(output)
    raise InferenceError(
        "generic",
        diagnostic=f"Unexpected prediction output format: {type(output).__name__}",
    )


async def _resolve_handle(handle: Any) -> Any:
    accessor = handle["url"] if isinstance(handle, dict) else getattr(handle, "url")
    if callable(accessor):
        accessor = accessor()
    if inspect.isawaitable(accessor):
        accessor = await accessor
    return accessor


async def extract_image_url(output: Any) -> str:
    """Resolve a single image URL from raw prediction output.

    Raises:
        InferenceError: generic, for unrecognized shapes or an empty URL
    """
    shape = classify_output(output)

    if isinstance(shape, UrlString):
        url = shape.url
    elif isinstance(shape, OutputList):
        first = shape.first
        if isinstance(first, str):
            url = first
        elif first is not None and _has_url(first):
            url = await _resolve_handle(first)
        else:
            raise InferenceError(
                "generic",
                diagnostic=f"Unexpected item type in output list: {type(first).__name__}",
            )
    else:
        url = await _resolve_handle(shape.handle)

    if url is None:
        url = ""
    url = str(url)
    if not url:
        raise InferenceError(
            "generic", diagnostic="Failed to extract valid image URL from output"
        )
    return url
