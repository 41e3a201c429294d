from __future__ import annotations

import http.client
import json
from typing import Annotated, Any, Literal, Self, cast
import urllib.error
import urllib.request

from pydantic import BaseModel, Field, ValidationError

from subscope.core.config import DEFAULT_REQUEST_TIMEOUT_SECONDS, SubscopeConfig

REUSED_TOKEN_ERROR_CODES = frozenset({"INVALID_PUBLIC_TOKEN"})


class GatewayError(Exception):
    """Base error for recurring-data gateway failures."""


class GatewayResponseError(GatewayError):
    """Raised when a response is not valid JSON or carries an unexpected tag."""


class PublicTokenReusedError(GatewayError):
    """Raised when the remote side rejects an already-exchanged public token."""


class GatewayBaseModel(BaseModel):
    """Shared base for gateway response models with a short parse alias."""

    @classmethod
    def parse(cls, data: Any) -> Self:
        return cls.model_validate(data)


class LinkTokenData(GatewayBaseModel):
    link_token: str


class LinkTokenResponse(GatewayBaseModel):
    tag: Literal["link_token"]
    data: LinkTokenData

    @property
    def link_token(self) -> str:
        return self.data.link_token


class RecurringDataResponse(GatewayBaseModel):
    tag: Literal["recurring_data"]
    # Raw stream payload; interpretation belongs to the normalizer.
    data: Any = None


RetrieveResult = LinkTokenResponse | RecurringDataResponse


class GatewayEnvelope(GatewayBaseModel):
    response_object: Annotated[RetrieveResult, Field(discriminator="tag")]


class RecurringGatewayClient:
    """JSON-over-HTTP client for the retrieve and exchange endpoints."""

    def __init__(
        self,
        *,
        retrieve_url: str,
        exchange_url: str,
        timeout_seconds: float = DEFAULT_REQUEST_TIMEOUT_SECONDS,
    ) -> None:
        self._retrieve_url = retrieve_url
        self._exchange_url = exchange_url
        self._timeout_seconds = timeout_seconds

    @classmethod
    def from_config(cls, config: SubscopeConfig) -> RecurringGatewayClient:
        return cls(
            retrieve_url=config.retrieve_url,
            exchange_url=config.exchange_url,
            timeout_seconds=config.request_timeout_seconds,
        )

    # High-level APIs -----------------------------------------------------

    def retrieve(self, user_id: str) -> RetrieveResult:
        """Ask for a link token or ready recurring data for ``user_id``."""
        body = self._post(self._retrieve_url, {"userId": user_id})
        return self._parse_envelope(body).response_object

    def exchange(self, user_id: str, public_token: str) -> RecurringDataResponse:
        """Exchange a one-time public token for recurring data.

        Raises:
            PublicTokenReusedError: If the token was already exchanged.
            GatewayResponseError: If the response is not ``recurring_data``.
            GatewayError: On transport failures.
        """
        body = self._post(
            self._exchange_url, {"publicToken": public_token, "userId": user_id}
        )
        result = self._parse_envelope(body).response_object
        if not isinstance(result, RecurringDataResponse):
            raise GatewayResponseError(
                f"Expected recurring_data from exchange, got tag {result.tag!r}"
            )
        return result

    # Transport -----------------------------------------------------------

    def _parse_json_response(self, body: str) -> dict[str, Any]:
        try:
            parsed = json.loads(body)
        except json.JSONDecodeError as e:
            raise GatewayResponseError(
                f"Failed to parse gateway response as JSON: {e}"
            ) from e
        if not isinstance(parsed, dict):
            raise GatewayResponseError("Gateway response is not a JSON object")
        return cast(dict[str, Any], parsed)

    def _parse_envelope(self, body: dict[str, Any]) -> GatewayEnvelope:
        try:
            return GatewayEnvelope.parse(body)
        except ValidationError as e:
            raise GatewayResponseError(
                f"Unexpected gateway response shape: {e.error_count()} error(s)"
            ) from e

    def _post(self, url: str, payload: dict[str, Any]) -> dict[str, Any]:
        data = json.dumps(payload).encode("utf-8")
        try:
            req = urllib.request.Request(  # noqa: S310
                url,
                data=data,
                headers={"Content-Type": "application/json"},
                method="POST",
            )
        except ValueError as e:
            raise GatewayError(f"Invalid gateway URL {url!r}: {e}") from e

        try:
            with urllib.request.urlopen(  # noqa: S310 - configured HTTPS endpoint
                req, timeout=self._timeout_seconds
            ) as resp:
                raw = resp.read()
        except urllib.error.HTTPError as e:
            err_body = e.read().decode("utf-8", "ignore")
            if _is_reused_token_error(e.code, err_body):
                raise PublicTokenReusedError(
                    f"Public token was already exchanged ({e.code})"
                ) from e
            raise GatewayError(f"Gateway HTTP error ({e.code}): {err_body}") from e
        except urllib.error.URLError as e:
            raise GatewayError(f"Network error calling gateway: {e.reason}") from e
        except TimeoutError as e:
            raise GatewayError("Gateway request timed out") from e
        except (OSError, http.client.HTTPException, ValueError) as e:
            raise GatewayError(f"Gateway connection failed: {e!r}") from e

        try:
            body = raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise GatewayResponseError("Gateway response is not UTF-8 text") from e
        return self._parse_json_response(body)


def _is_reused_token_error(status: int, body: str) -> bool:
    if status == 409:
        return True
    try:
        parsed = json.loads(body)
    except json.JSONDecodeError:
        return False
    if not isinstance(parsed, dict):
        return False
    error_code = parsed.get("error_code")
    if error_code is None and isinstance(parsed.get("error"), dict):
        error_code = parsed["error"].get("error_code")
    return isinstance(error_code, str) and error_code in REUSED_TOKEN_ERROR_CODES
