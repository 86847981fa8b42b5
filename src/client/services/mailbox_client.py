"""
mail.tm REST client for Burnmail.

This module wraps the mail.tm HTTP API: domain lookup, account creation,
login, message listing, retrieval, deletion and attachment download.
Responses are validated into the models from ``common.models`` and
transport failures are translated into the ``common.exceptions``
hierarchy so callers never handle ``requests`` types directly.
"""

import logging
import threading
import time
from typing import Any, Optional

import requests
from pydantic import ValidationError

from common.exceptions import (
    APIError,
    AuthenticationError,
    NetworkError,
    NotFoundError,
    RateLimitError,
    RequestTimeoutError,
)
from common.models import (
    Account,
    AuthToken,
    Domain,
    MessageDetail,
    MessageSummary,
)

logger = logging.getLogger(__name__)

USER_AGENT = "burnmail"
HYDRA_MEMBER = "hydra:member"
MERGE_PATCH = "application/merge-patch+json"


class MailTMClient:
    """
    Thread-safe client for the mail.tm API.

    Requests are throttled client side: at most ``max_concurrent_requests``
    are in flight and consecutive requests start at least
    ``min_request_interval`` seconds apart.
    """

    def __init__(
        self,
        base_url: str = "https://api.mail.tm",
        timeout: float = 30.0,
        min_request_interval: float = 0.2,
        max_concurrent_requests: int = 5,
        token: Optional[str] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        """
        Initialize the client.

        Args:
            base_url: API root without trailing slash.
            timeout: Per-request timeout in seconds.
            min_request_interval: Minimum spacing between request starts.
            max_concurrent_requests: Maximum number of requests in flight.
            token: Bearer token from a previous login.
            session: Optional preconfigured HTTP session.
        """
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._min_interval = min_request_interval
        self._slots = threading.BoundedSemaphore(max_concurrent_requests)
        self._lock = threading.Lock()
        self._last_request = 0.0
        self._token = token

        self._session = session or requests.Session()
        self._session.headers.update({
            "User-Agent": USER_AGENT,
            "Accept": "application/json",
        })

    @property
    def token(self) -> Optional[str]:
        """Current bearer token."""
        with self._lock:
            return self._token

    def set_token(self, token: Optional[str]) -> None:
        """Replace the bearer token used for authenticated calls."""
        with self._lock:
            self._token = token

    def close(self) -> None:
        """Close the underlying HTTP session."""
        self._session.close()

    # =========================================================================
    # Transport
    # =========================================================================

    def _wait_for_slot(self) -> None:
        """Enforce the minimum spacing between request starts."""
        with self._lock:
            now = time.monotonic()
            wait = self._last_request + self._min_interval - now
            self._last_request = max(now, self._last_request + self._min_interval)
        if wait > 0:
            time.sleep(wait)

    def _request(
        self,
        method: str,
        path: str,
        operation: str,
        expected: tuple[int, ...] = (200,),
        auth: bool = True,
        **kwargs: Any,
    ) -> requests.Response:
        """
        Perform one HTTP request and map failures to domain errors.

        Args:
            method: HTTP method.
            path: Path below the API root.
            operation: Human readable description used in error messages.
            expected: Status codes treated as success.
            auth: Send the bearer token.
            **kwargs: Passed through to ``requests.Session.request``.

        Returns:
            The successful response.

        Raises:
            RateLimitError: On HTTP 429.
            AuthenticationError: On HTTP 401.
            NotFoundError: On HTTP 404.
            APIError: On any other unexpected status.
            RequestTimeoutError: If the request timed out.
            NetworkError: If the API could not be reached.
        """
        headers = kwargs.pop("headers", {})
        token = self.token
        if auth and token:
            headers["Authorization"] = f"Bearer {token}"

        url = f"{self._base_url}{path}"

        with self._slots:
            self._wait_for_slot()
            logger.debug("%s %s", method, url)
            try:
                response = self._session.request(
                    method, url, headers=headers, timeout=self._timeout, **kwargs
                )
            except requests.Timeout:
                raise RequestTimeoutError(operation, self._timeout)
            except requests.RequestException as e:
                raise NetworkError(f"Failed to {operation}: {e}")

        status = response.status_code
        if status in expected:
            return response

        details = {"body": response.text[:200]} if response.text else None
        logger.debug("%s %s returned %d", method, url, status)

        if status == 429:
            retry_after = response.headers.get("Retry-After")
            raise RateLimitError(
                operation,
                float(retry_after) if retry_after and retry_after.isdigit() else None,
            )
        if status == 401:
            raise AuthenticationError(f"Failed to {operation}", status, details)
        if status == 404:
            raise NotFoundError(f"Failed to {operation}", status, details)
        raise APIError(f"Failed to {operation}", status, details)

    @staticmethod
    def _json(response: requests.Response, operation: str) -> Any:
        """Decode a JSON body."""
        try:
            return response.json()
        except ValueError as e:
            raise APIError(f"Failed to parse {operation} response: {e}")

    @staticmethod
    def _members(payload: Any, operation: str) -> list[Any]:
        """Extract a collection from a bare array or a Hydra envelope."""
        if isinstance(payload, list):
            return payload
        if isinstance(payload, dict) and isinstance(payload.get(HYDRA_MEMBER), list):
            return payload[HYDRA_MEMBER]
        raise APIError(f"Unexpected {operation} response format")

    # =========================================================================
    # Accounts
    # =========================================================================

    def get_domains(self) -> list[Domain]:
        """
        List the domains accounts can be created on.

        Returns:
            Available domains, possibly inactive ones included.
        """
        response = self._request("GET", "/domains", "get domains", auth=False)
        members = self._members(self._json(response, "domains"), "domains")
        try:
            return [Domain.model_validate(item) for item in members]
        except ValidationError as e:
            raise APIError(f"Failed to parse domains response: {e}")

    def create_account(self, address: str, password: str) -> Account:
        """Register a new mailbox."""
        response = self._request(
            "POST",
            "/accounts",
            "create account",
            expected=(200, 201),
            auth=False,
            json={"address": address, "password": password},
        )
        try:
            return Account.model_validate(self._json(response, "account"))
        except ValidationError as e:
            raise APIError(f"Failed to parse account response: {e}")

    def login(self, address: str, password: str) -> str:
        """
        Obtain a bearer token and use it for subsequent calls.

        Returns:
            The bearer token.
        """
        response = self._request(
            "POST",
            "/token",
            "login",
            auth=False,
            json={"address": address, "password": password},
        )
        try:
            auth = AuthToken.model_validate(self._json(response, "token"))
        except ValidationError as e:
            raise APIError(f"Failed to parse token response: {e}")

        self.set_token(auth.token)
        logger.info("Logged in as %s", address)
        return auth.token

    def delete_account(self, account_id: str) -> None:
        """Delete the account and every message in it."""
        self._request(
            "DELETE", f"/accounts/{account_id}", "delete account",
            expected=(200, 204),
        )
        logger.info("Deleted account %s", account_id)

    # =========================================================================
    # Messages
    # =========================================================================

    def list_messages(self) -> list[MessageSummary]:
        """
        List the messages in the inbox.

        Returns:
            Message summaries in server order.
        """
        response = self._request("GET", "/messages", "get messages")
        payload = self._json(response, "messages")
        if isinstance(payload, dict) and HYDRA_MEMBER not in payload:
            return []
        members = self._members(payload, "messages")
        try:
            return [MessageSummary.model_validate(item) for item in members]
        except ValidationError as e:
            raise APIError(f"Failed to parse messages response: {e}")

    def get_message(self, message_id: str) -> MessageDetail:
        """Fetch one message with its body and attachment descriptors."""
        response = self._request("GET", f"/messages/{message_id}", "get message")
        try:
            return MessageDetail.model_validate(self._json(response, "message"))
        except ValidationError as e:
            raise APIError(f"Failed to parse message response: {e}")

    def delete_message(self, message_id: str) -> None:
        """Delete one message."""
        self._request(
            "DELETE", f"/messages/{message_id}", "delete message",
            expected=(200, 204),
        )
        logger.debug("Deleted message %s", message_id)

    def mark_read(self, message_id: str) -> None:
        """Flag a message as seen on the server."""
        self._request(
            "PATCH",
            f"/messages/{message_id}",
            "mark message as read",
            json={"seen": True},
            headers={"Content-Type": MERGE_PATCH},
        )

    def download_attachment(self, message_id: str, attachment_id: str) -> bytes:
        """
        Fetch the raw bytes of an attachment.

        Args:
            message_id: Message owning the attachment.
            attachment_id: Attachment identifier from the message detail.

        Returns:
            Attachment content.
        """
        response = self._request(
            "GET",
            f"/messages/{message_id}/attachment/{attachment_id}",
            "download attachment",
            headers={"Accept": "*/*"},
        )
        return response.content
