"""Google OAuth 2.0 authorization-code flow."""

from urllib.parse import urlencode

import httpx

from errors import AuthError
from log import get_logger
from schemas import IdentityProfile

logger = get_logger(__name__)

AUTHORIZE_URL = "https://accounts.google.com/o/oauth2/v2/auth"
TOKEN_URL = "https://oauth2.googleapis.com/token"
USERINFO_URL = "https://openidconnect.googleapis.com/v1/userinfo"


class GoogleIdentityProvider:
    def __init__(self, client_id: str, client_secret: str, redirect_uri: str, timeout: float = 10.0):
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self.timeout = timeout

    def authorization_url(self) -> str:
        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "scope": "openid email profile",
        }
        return f"{AUTHORIZE_URL}?{urlencode(params)}"

    def fetch_profile(self, code: str) -> IdentityProfile:
        """Exchange an authorization code for the user's profile."""
        try:
            with httpx.Client(timeout=self.timeout) as client:
                token_response = client.post(
                    TOKEN_URL,
                    data={
                        "code": code,
                        "client_id": self.client_id,
                        "client_secret": self.client_secret,
                        "redirect_uri": self.redirect_uri,
                        "grant_type": "authorization_code",
                    },
                )
                token_response.raise_for_status()
                access_token = token_response.json()["access_token"]

                info_response = client.get(
                    USERINFO_URL, headers={"Authorization": f"Bearer {access_token}"}
                )
                info_response.raise_for_status()
                info = info_response.json()
        except (httpx.HTTPError, KeyError, ValueError) as exc:
            logger.warning("google_exchange_failed", error=str(exc))
            raise AuthError("Google login failed")

        if not info.get("email"):
            raise AuthError("Google account has no email")
        return IdentityProfile(
            provider_id=str(info.get("sub")),
            email=info["email"],
            first_name=info.get("given_name"),
            last_name=info.get("family_name"),
            picture=info.get("picture"),
        )
