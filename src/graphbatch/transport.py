"""
HTTP transport posting ``$batch`` payloads.
"""

from __future__ import annotations

import typing as t
from urllib.parse import urlsplit

import httpx
import structlog

from graphbatch.exceptions import INVALID_RESPONSE, TransportError

log = structlog.get_logger(__name__)


class BatchTransport(t.Protocol):
    """Authenticated transport able to submit one batch payload."""

    base_path: str

    def submit_batch(self, *, payload: dict[str, t.Any]) -> dict[str, t.Any]: ...


class HttpxBatchTransport:
    """
    Submit batch payloads through an ``httpx.Client``.

    Parameters
    ----------
    base_url : str
        Service root, e.g. ``https://graph.microsoft.com/v1.0``.
    headers : dict[str, str] | None, optional
        Headers sent with every submission (authorization).
    batch_endpoint : str, optional
        Batch path relative to ``base_url``.
    timeout : float, optional
        Per-submission timeout in seconds.
    client : httpx.Client | None, optional
        Preconfigured client; built from the other arguments when omitted.
    """

    def __init__(
        self,
        *,
        base_url: str = "https://graph.microsoft.com/v1.0",
        headers: dict[str, str] | None = None,
        batch_endpoint: str = "$batch",
        timeout: float = 100.0,
        client: httpx.Client | None = None,
    ) -> None:
        self._batch_endpoint = batch_endpoint
        self._client = client or httpx.Client(
            base_url=base_url,
            headers=headers,
            timeout=timeout,
        )
        self.base_path = urlsplit(str(self._client.base_url)).path.rstrip("/")

    @classmethod
    def with_token(cls, *, token: str, **kwargs: t.Any) -> HttpxBatchTransport:
        """Build a transport sending ``token`` as a bearer credential."""
        headers = {"Authorization": f"Bearer {token}", **(kwargs.pop("headers", None) or {})}
        return cls(headers=headers, **kwargs)

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> HttpxBatchTransport:
        return self

    def __exit__(self, *exc_info: t.Any) -> None:
        self.close()

    @staticmethod
    def _classify_status_error(*, response: httpx.Response) -> str:
        code = None
        try:
            data = response.json()
        except ValueError:
            data = None
        error = data.get("error") if isinstance(data, dict) else None
        if isinstance(error, dict):
            code = error.get("code")
        return f"{response.status_code}|{code or response.reason_phrase}"

    def submit_batch(self, *, payload: dict[str, t.Any]) -> dict[str, t.Any]:
        """
        POST one batch and return its parsed JSON body.

        Parameters
        ----------
        payload : dict[str, typing.Any]
            ``{"requests": [...]}`` body.

        Returns
        -------
        dict[str, typing.Any]
            Parsed ``{"responses": [...]}`` body.

        Raises
        ------
        TransportError
            If the submission fails or the response cannot be parsed.
        """
        log.debug(
            event="Submitting batch",
            endpoint=self._batch_endpoint,
            request_count=len(payload.get("requests", [])),
        )
        try:
            response = self._client.post(
                url=self._batch_endpoint,
                json=payload,
                headers={"Content-Type": "application/json"},
            )
            response.raise_for_status()
            json_response = response.json()
        except httpx.HTTPStatusError as error:
            raise TransportError(
                f"Batch submission rejected with status {error.response.status_code}",
                classification=self._classify_status_error(response=error.response),
            ) from error
        except httpx.HTTPError as error:
            raise TransportError(
                f"Batch submission failed: {error}",
                classification=type(error).__name__,
            ) from error
        except ValueError as error:
            raise TransportError(
                "Batch response is not valid JSON",
                classification=INVALID_RESPONSE,
            ) from error

        if not isinstance(json_response, dict) or not isinstance(
            json_response.get("responses"), list
        ):
            raise TransportError(
                "Batch response has no 'responses' list",
                classification=INVALID_RESPONSE,
            )
        return json_response
