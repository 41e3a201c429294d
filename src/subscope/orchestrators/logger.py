"""Logging for the page controller and link flow.

Keeps message formatting out of the decision logic.
"""

from __future__ import annotations

import loguru
from loguru import logger


def _short(token: str) -> str:
    return f"{token[:8]}..." if len(token) > 8 else token


class PageControllerLogger:
    """Handles all logging for PageController."""

    def __init__(self, logger_instance: loguru.Logger = logger) -> None:
        self._logger = logger_instance

    def identity_missing(self) -> None:
        self._logger.error("Missing user_id; nothing to load")

    def activation_in_progress(self) -> None:
        self._logger.debug("Activation already in progress; ignoring")

    def cache_hit(self, count: int) -> None:
        self._logger.bind(items=count).info(
            "Serving {} recurring items from cache", count
        )

    def cache_miss(self) -> None:
        self._logger.info("No fresh cache; retrieving from gateway")

    def retrieve_link_token(self, link_token: str) -> None:
        self._logger.bind(link_token=_short(link_token)).info(
            "Gateway returned a link token"
        )

    def retrieve_items(self, count: int) -> None:
        self._logger.bind(items=count).info(
            "Gateway returned {} active recurring items", count
        )

    def retrieve_unexpected(self, error: Exception) -> None:
        self._logger.warning("Unexpected gateway response: {}", error)

    def retrieve_failed(self, error: Exception) -> None:
        self._logger.error("Error retrieving recurring data: {}", error)

    def link_items(self, count: int) -> None:
        self._logger.bind(items=count).info(
            "Bank link delivered {} recurring items", count
        )

    def link_error(self, message: str) -> None:
        self._logger.warning("Bank link failed: {}", message)

    def response_discarded(self) -> None:
        self._logger.debug("Controller disposed; discarding gateway response")


class LinkFlowLogger:
    """Handles all logging for LinkFlowOrchestrator."""

    def __init__(self, logger_instance: loguru.Logger = logger) -> None:
        self._logger = logger_instance

    def waiting_for_public_token(self, link_token: str) -> None:
        self._logger.bind(link_token=_short(link_token)).info(
            "Waiting for Plaid Link to complete"
        )

    def public_token_unavailable(self, error: Exception) -> None:
        self._logger.warning("Plaid Link did not return a public token: {}", error)

    def exchange_started(self, public_token: str) -> None:
        self._logger.bind(public_token=_short(public_token)).info(
            "Exchanging public token"
        )

    def exchange_skipped(self, reason: str) -> None:
        self._logger.warning("Skipping public token exchange: {}", reason)

    def exchange_succeeded(self, count: int) -> None:
        self._logger.bind(items=count).info(
            "Exchange returned {} active recurring items", count
        )

    def token_reused(self, error: Exception) -> None:
        self._logger.error("Public token rejected as already used: {}", error)

    def exchange_failed(self, error: Exception) -> None:
        self._logger.error("Error exchanging public token: {}", error)
