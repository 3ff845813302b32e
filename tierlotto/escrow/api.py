import logging
import os
from urllib.parse import quote, urljoin
from typing import Any, Optional, Mapping

import requests
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

JWT_LOGIN_PATH = "/api/v1/auth/jwt-token"


class EscrowClient:
    """HTTP client for the escrow service custodying lottery funds.

    The client authenticates as the lottery's service account: it first
    fetches the CSRF cookie, then logs in for a JWT. When the escrow answers
    ``401`` (expired token) the client logs in again and retries the request
    once. Amounts are sent as decimal strings in the smallest unit. Failed
    requests raise ``requests.HTTPError`` so the caller's transaction aborts.

    Parameters
    ----------
    base_fqdn : Optional[str]
        Host of the escrow service; defaults to ``ESCROW_BASE_FQDN``.
    timeout : int
        Seconds before any escrow request, including the login handshake,
        is abandoned.
    username, password : Optional[str]
        Service account; default to ``ESCROW_API_USERNAME`` and
        ``ESCROW_API_PASSWORD``.
    session : Optional[requests.Session]
        Session to reuse, mainly for tests.
    """

    def __init__(
        self,
        base_fqdn: Optional[str] = None,
        timeout: int = 45,
        *,
        username: Optional[str] = None,
        password: Optional[str] = None,
        session: Optional[requests.Session] = None,
    ):
        load_dotenv()
        fqdn = base_fqdn or os.getenv("ESCROW_BASE_FQDN")
        if not fqdn:
            raise ValueError("Environment variable 'ESCROW_BASE_FQDN' is not set")

        self.base_url = f"https://{fqdn}".rstrip("/")
        self.timeout = timeout
        self._credentials = {
            "username": username or os.getenv("ESCROW_API_USERNAME"),
            "password": password or os.getenv("ESCROW_API_PASSWORD"),
        }
        self.session = session or requests.Session()
        self.csrf = self._fetch_csrf()
        self.jwt = self._login()

    # -------- handshake --------
    def _url(self, path: str) -> str:
        return urljoin(self.base_url + "/", path.lstrip("/"))

    def _fetch_csrf(self) -> str:
        """Open the escrow session and return its CSRF token.

        Raises
        ------
        RuntimeError
            If the service is unreachable or sets no ``csrftoken`` cookie.
        """
        try:
            response = self.session.get(self.base_url, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            logger.critical(f"Could not reach escrow service at {self.base_url}: {e}")
            raise RuntimeError(f"Failed to establish escrow session: {e}") from e

        csrf_token = response.cookies.get("csrftoken")
        if not csrf_token:
            raise RuntimeError("Escrow service did not return a CSRF token")
        logger.debug("Escrow CSRF token acquired")
        return csrf_token

    def _login(self) -> str:
        # Never log raw credentials
        logger.debug("Logging in to escrow service with the lottery service account")
        response = self.session.post(
            self._url(JWT_LOGIN_PATH),
            json=self._credentials,
            headers={"X-CSRFTOKEN": self.csrf},
            timeout=self.timeout,
        )
        response.raise_for_status()
        return response.json()["access"]

    # -------- headers --------
    @property
    def auth_headers(self) -> Mapping[str, str]:
        return {"Accept": "application/json", "Authorization": f"Bearer {self.jwt}"}

    @property
    def auth_csrf_headers(self) -> Mapping[str, str]:
        return {**self.auth_headers, "X-CSRFTOKEN": self.csrf}

    # -------- core request --------
    def _request(
        self,
        method: str,
        path: str,
        *,
        with_csrf: bool = False,
        params: Optional[dict] = None,
        json: Optional[dict] = None,
    ) -> Any:
        for attempt in range(2):
            r = self.session.request(
                method=method.upper(),
                url=self._url(path),
                headers=self.auth_csrf_headers if with_csrf else self.auth_headers,
                params=params,
                json=json,
                timeout=self.timeout,
            )
            if r.status_code == 401 and attempt == 0:
                logger.info("Escrow token rejected; logging in again")
                self.jwt = self._login()
                continue
            break
        r.raise_for_status()
        return r.json() if r.content else None

    # -------- API callers --------
    def balance(self, owner: str) -> int:
        """Return the escrow-held balance of ``owner``."""
        response = self._request(
            "GET", f"/api/v1/escrow/balances/{quote(owner, safe='')}"
        )
        return int(response["balance"])

    def collect(self, owner: str, amount: int, reference: Optional[str] = None) -> dict:
        """Move ``amount`` from ``owner`` into the lottery escrow account."""
        return self._request(
            "POST",
            "/api/v1/escrow/collect",
            with_csrf=True,
            json={"owner": owner, "amount": str(amount), "reference": reference},
        )

    def pay_out(
        self, recipient: str, amount: int, reference: Optional[str] = None
    ) -> dict:
        """Transfer ``amount`` from the lottery escrow account to ``recipient``."""
        return self._request(
            "POST",
            "/api/v1/escrow/payout",
            with_csrf=True,
            json={"recipient": recipient, "amount": str(amount), "reference": reference},
        )
