"""Helpers shared by the REST reader and writer."""

from typing import Any

import requests


def unwrap(resp: requests.Response) -> Any:
    """
    Raise for HTTP errors and return the ``data`` member of the response envelope.

    The service answers ``{"success": true, "data": ...}``; a ``success`` of
    false is treated like an HTTP error.
    """
    resp.raise_for_status()
    if not resp.content:
        return None
    body = resp.json()
    if isinstance(body, dict) and "success" in body:
        if not body["success"]:
            message = body.get("message") or body.get("error") or "request rejected"
            raise requests.HTTPError(message, response=resp)
        return body.get("data")
    return body
