"""
OIDC relying-party client: discovery, authorization URL (PKCE S256), code exchange, userinfo,
refresh and RP-initiated logout URL. One attempt per call, bounded timeout, no retries.
"""
import logging
from dataclasses import dataclass
from typing import Any
from urllib.parse import urlencode

import httpx

from weather_dashboard.config import HTTP_TIMEOUT_SECONDS

logger = logging.getLogger(__name__)

SCOPE = "openid profile email"


class OIDCError(Exception):
    """A call to the identity provider failed (network, status, or response content)."""


class OIDCConfigurationError(OIDCError):
    """Required provider endpoints could not be determined."""


@dataclass
class TokenSet:
    access_token: str
    id_token: str | None = None
    refresh_token: str | None = None
    expires_in: int = 0
    token_type: str | None = None

    @classmethod
    def from_response(cls, data: Any) -> "TokenSet":
        if not isinstance(data, dict):
            raise OIDCError("Token response is not a JSON object")
        access_token = data.get("access_token")
        if not isinstance(access_token, str) or not access_token:
            raise OIDCError("Token response has no access_token")
        expires_in = data.get("expires_in")
        return cls(
            access_token=access_token,
            id_token=_opt_str(data.get("id_token")),
            refresh_token=_opt_str(data.get("refresh_token")),
            expires_in=int(expires_in) if isinstance(expires_in, (int, float)) else 0,
            token_type=_opt_str(data.get("token_type")),
        )


@dataclass
class UserInfo:
    sub: str
    name: str | None = None
    email: str | None = None
    preferred_username: str | None = None

    @property
    def display_name(self) -> str:
        return self.name or self.preferred_username or self.sub


@dataclass
class ProviderEndpoints:
    authorization_endpoint: str | None = None
    token_endpoint: str | None = None
    userinfo_endpoint: str | None = None
    end_session_endpoint: str | None = None

    @property
    def complete(self) -> bool:
        return bool(self.authorization_endpoint and self.token_endpoint and self.userinfo_endpoint)

    @classmethod
    def by_convention(cls, base_url: str) -> "ProviderEndpoints":
        return cls(
            authorization_endpoint=f"{base_url}/authorize",
            token_endpoint=f"{base_url}/token",
            userinfo_endpoint=f"{base_url}/userinfo",
            end_session_endpoint=f"{base_url}/end-session",
        )


def _opt_str(value: Any) -> str | None:
    return value if isinstance(value, str) and value else None


class OIDCClient:
    def __init__(
        self,
        http: httpx.Client | None = None,
        timeout: float = HTTP_TIMEOUT_SECONDS,
    ) -> None:
        self._http = http or httpx.Client(timeout=timeout, follow_redirects=True)
        self._owns_http = http is None
        self.timeout = timeout
        self.issuer: str | None = None
        self.client_id: str | None = None
        self.client_secret: str | None = None
        self.redirect_uri: str | None = None
        self.endpoints = ProviderEndpoints()
        self._configured = False

    @property
    def is_configured(self) -> bool:
        return self._configured

    def configure(self, issuer: str, client_id: str, client_secret: str, redirect_uri: str) -> None:
        """
        Learn provider endpoints from {issuer}/.well-known/openid-configuration.
        If discovery fails, fall back to {issuer}/authorize, /token, /userinfo, /end-session.
        """
        base_url = issuer.rstrip("/")
        if not base_url:
            raise OIDCConfigurationError("OIDC issuer is empty")
        self._configured = False
        self.issuer = issuer
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri

        try:
            endpoints = self._discover(base_url)
        except OIDCError as e:
            logger.warning("OIDC discovery failed (%s); using fallback endpoints", e)
            endpoints = ProviderEndpoints.by_convention(base_url)

        if not endpoints.complete:
            raise OIDCConfigurationError("authorization, token and userinfo endpoints are required")
        self.endpoints = endpoints
        self._configured = True
        logger.info(
            "OIDC configured: issuer=%s client_id=%s authorize=%s token=%s userinfo=%s end_session=%s",
            self.issuer,
            self.client_id,
            endpoints.authorization_endpoint,
            endpoints.token_endpoint,
            endpoints.userinfo_endpoint,
            endpoints.end_session_endpoint,
        )

    def _discover(self, base_url: str) -> ProviderEndpoints:
        url = f"{base_url}/.well-known/openid-configuration"
        logger.debug("Discovering OIDC configuration from %s", url)
        data = self._request_json("GET", url)
        if not isinstance(data, dict):
            raise OIDCError("Discovery document is not a JSON object")
        endpoints = ProviderEndpoints(
            authorization_endpoint=_opt_str(data.get("authorization_endpoint")),
            token_endpoint=_opt_str(data.get("token_endpoint")),
            userinfo_endpoint=_opt_str(data.get("userinfo_endpoint")),
            end_session_endpoint=_opt_str(data.get("end_session_endpoint")),
        )
        if not endpoints.complete:
            raise OIDCError("Discovery document missing required endpoints")
        return endpoints

    def _require_configured(self) -> None:
        if not self._configured:
            raise OIDCConfigurationError("OIDC client is not configured")

    def build_authorization_url(self, state: str, code_challenge: str) -> str:
        self._require_configured()
        params = {
            "response_type": "code",
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "scope": SCOPE,
            "state": state,
            "code_challenge": code_challenge,
            "code_challenge_method": "S256",
        }
        return f"{self.endpoints.authorization_endpoint}?{urlencode(params)}"

    def exchange_code(self, code: str, code_verifier: str) -> TokenSet:
        """authorization_code grant with the PKCE verifier. Requires access_token in the response."""
        self._require_configured()
        data = self._request_json(
            "POST",
            self.endpoints.token_endpoint,
            data={
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": self.redirect_uri,
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "code_verifier": code_verifier,
            },
        )
        return TokenSet.from_response(data)

    def refresh_token(self, refresh_token: str) -> TokenSet:
        self._require_configured()
        data = self._request_json(
            "POST",
            self.endpoints.token_endpoint,
            data={
                "grant_type": "refresh_token",
                "refresh_token": refresh_token,
                "client_id": self.client_id,
                "client_secret": self.client_secret,
            },
        )
        return TokenSet.from_response(data)

    def fetch_userinfo(self, access_token: str) -> UserInfo:
        """GET userinfo with the bearer token. sub is required."""
        self._require_configured()
        data = self._request_json(
            "GET",
            self.endpoints.userinfo_endpoint,
            headers={"Authorization": f"Bearer {access_token}"},
        )
        if not isinstance(data, dict):
            raise OIDCError("Userinfo response is not a JSON object")
        sub = _opt_str(data.get("sub"))
        if sub is None:
            raise OIDCError("Userinfo response has no sub")
        preferred_username = _opt_str(data.get("preferred_username"))
        return UserInfo(
            sub=sub,
            name=_opt_str(data.get("name")) or preferred_username,
            email=_opt_str(data.get("email")),
            preferred_username=preferred_username,
        )

    def logout_url(self, id_token_hint: str | None, post_logout_redirect_uri: str | None) -> str | None:
        """End-session URL; None if the provider has no end-session endpoint."""
        self._require_configured()
        endpoint = self.endpoints.end_session_endpoint
        if not endpoint:
            return None
        if id_token_hint and post_logout_redirect_uri:
            params = {"id_token_hint": id_token_hint, "post_logout_redirect_uri": post_logout_redirect_uri}
            sep = "&" if "?" in endpoint else "?"
            return f"{endpoint}{sep}{urlencode(params)}"
        return endpoint

    def _request_json(self, method: str, url: str | None, **kwargs: Any) -> Any:
        if not url:
            raise OIDCError("Endpoint not known")
        headers = {"Accept": "application/json", **kwargs.pop("headers", {})}
        try:
            r = self._http.request(method, url, headers=headers, timeout=self.timeout, **kwargs)
        except httpx.HTTPError as e:
            raise OIDCError(f"{method} {url} failed: {e}") from e
        if not r.is_success:
            raise OIDCError(f"{method} {url} returned HTTP {r.status_code}")
        try:
            return r.json()
        except ValueError as e:
            raise OIDCError(f"{method} {url} returned invalid JSON") from e

    def close(self) -> None:
        if self._owns_http:
            self._http.close()
