"""Transports rewriting outgoing requests and incoming responses.

Rules come from :class:`CustomizeRequestSettings` and
:class:`CustomizeResponseSettings` and are applied in configured order to an
immutable draft. The original request or response object is never mutated; a
fresh one is built from the final draft.
"""

from __future__ import annotations

import logging
from typing import Sequence

import httpx

from ..rules import RequestDraft, RequestRule, ResponseDraft, ResponseRule
from ..settings import CustomizeRequestSettings, CustomizeResponseSettings
from .base import MiddlewareTransport

LOGGER = logging.getLogger(__name__)


def apply_request_rules(request: httpx.Request, rules: Sequence[RequestRule]) -> httpx.Request:
    draft = RequestDraft.from_request(request)
    for rule in rules:
        draft = rule.apply(draft)
    return draft.to_request()


def apply_response_rules(
    response: httpx.Response, rules: Sequence[ResponseRule], request: httpx.Request
) -> httpx.Response:
    draft = ResponseDraft.from_response(response)
    for rule in rules:
        draft = rule.apply(draft)
    return draft.to_response(request)


class CustomizeRequestTransport(MiddlewareTransport[CustomizeRequestSettings]):
    settings_cls = CustomizeRequestSettings

    def handle_request(self, request: httpx.Request) -> httpx.Response:
        settings = self.settings_for(request)
        if not settings.enabled or not settings.rules:
            return self._inner.handle_request(request)
        customized = apply_request_rules(request, settings.rules)
        LOGGER.debug(
            "request-customized",
            extra={
                "host": request.url.host,
                "rules": [rule.action for rule in settings.rules],
                "url": str(customized.url),
            },
        )
        return self._inner.handle_request(customized)


class CustomizeResponseTransport(MiddlewareTransport[CustomizeResponseSettings]):
    settings_cls = CustomizeResponseSettings

    def handle_request(self, request: httpx.Request) -> httpx.Response:
        settings = self.settings_for(request)
        response = self._inner.handle_request(request)
        if not settings.enabled or not settings.rules:
            return response
        try:
            customized = apply_response_rules(response, settings.rules, request)
        finally:
            response.close()
        LOGGER.debug(
            "response-customized",
            extra={
                "host": request.url.host,
                "rules": [rule.action for rule in settings.rules],
                "status": customized.status_code,
            },
        )
        return customized


__all__ = [
    "CustomizeRequestTransport",
    "CustomizeResponseTransport",
    "apply_request_rules",
    "apply_response_rules",
]
