# src/codable_bff/hosted_service.py

import typing

import httpx
from pydantic import BaseModel

from .errors import HostedServiceError, NetworkOrProviderError


class TokenGrant(BaseModel):
    """Tokens and user record returned by sign-in, OTP verification and refresh."""
    access_token: str
    refresh_token: typing.Optional[str] = None
    expires_in: typing.Optional[int] = None
    expires_at: typing.Optional[int] = None
    token_type: typing.Optional[str] = "bearer"
    user: typing.Optional[typing.Dict[str, typing.Any]] = None


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text
    if isinstance(body, dict):
        for key in ("msg", "error_description", "message", "error"):
            if body.get(key):
                return str(body[key])
    return response.text


class HostedServiceClient:
    """
    Async client for the hosted auth (/auth/v1) and data (/rest/v1) service.
    Requests without a user access token are sent with the anon key.
    """

    def __init__(
            self,
            auth_url: str,
            rest_url: str,
            anon_key: str,
            timeout: float = 30.0,
            http_client: typing.Optional[httpx.AsyncClient] = None,
    ):
        self.auth_url = auth_url.rstrip("/")
        self.rest_url = rest_url.rstrip("/")
        self.anon_key = anon_key
        self._client = http_client or httpx.AsyncClient(timeout=timeout)

    async def aclose(self):
        await self._client.aclose()

    def _headers(self, access_token: typing.Optional[str] = None, extra: typing.Optional[dict] = None) -> dict:
        headers = {
            "apikey": self.anon_key,
            "Authorization": f"Bearer {access_token or self.anon_key}",
            "Content-Type": "application/json",
        }
        if extra:
            headers.update(extra)
        return headers

    async def _request(
            self,
            method: str,
            url: str,
            access_token: typing.Optional[str] = None,
            json: typing.Any = None,
            params: typing.Optional[dict] = None,
            headers: typing.Optional[dict] = None,
    ) -> typing.Any:
        try:
            response = await self._client.request(
                method,
                url,
                headers=self._headers(access_token, headers),
                json=json,
                params=params,
            )
        except httpx.RequestError as e:
            print(f"SUPABASE: Request error on {method} {url}: {str(e)}")
            raise NetworkOrProviderError(
                "Could not reach the authentication service. Please check your connection.",
                detail=str(e),
            ) from e

        if response.status_code >= 400:
            message = _error_message(response)
            print(f"SUPABASE: {method} {url} failed: {response.status_code} - {message}")
            raise HostedServiceError(response.status_code, message)

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            return response.text

    # --- Auth ---

    async def sign_in_with_password(self, email: str, password: str) -> TokenGrant:
        body = await self._request(
            "POST", f"{self.auth_url}/token",
            json={"email": email, "password": password},
            params={"grant_type": "password"},
        )
        return TokenGrant(**body)

    async def sign_out(self, access_token: str) -> None:
        await self._request("POST", f"{self.auth_url}/logout", access_token=access_token)

    async def send_magic_link(self, email: str, redirect_to: typing.Optional[str] = None,
                              create_user: bool = True, metadata: typing.Optional[dict] = None) -> None:
        params = {"redirect_to": redirect_to} if redirect_to else None
        await self._request(
            "POST", f"{self.auth_url}/otp",
            json={"email": email, "create_user": create_user, "data": metadata or {}},
            params=params,
        )

    async def update_user(self, access_token: str, password: typing.Optional[str] = None,
                          data: typing.Optional[dict] = None) -> dict:
        body: typing.Dict[str, typing.Any] = {}
        if password is not None:
            body["password"] = password
        if data is not None:
            body["data"] = data
        return await self._request("PUT", f"{self.auth_url}/user", access_token=access_token, json=body)

    async def resend_verification(self, email: str, redirect_to: typing.Optional[str] = None) -> None:
        params = {"redirect_to": redirect_to} if redirect_to else None
        await self._request(
            "POST", f"{self.auth_url}/resend",
            json={"type": "signup", "email": email},
            params=params,
        )

    async def get_user(self, access_token: str) -> dict:
        return await self._request("GET", f"{self.auth_url}/user", access_token=access_token)

    async def verify_otp(self, token: str, otp_type: str, email: typing.Optional[str] = None) -> TokenGrant:
        body: typing.Dict[str, typing.Any] = {"type": otp_type}
        if email:
            body["email"] = email
            body["token"] = token
        else:
            body["token_hash"] = token
        result = await self._request("POST", f"{self.auth_url}/verify", json=body)
        return TokenGrant(**result)

    async def refresh_session(self, refresh_token: str) -> TokenGrant:
        body = await self._request(
            "POST", f"{self.auth_url}/token",
            json={"refresh_token": refresh_token},
            params={"grant_type": "refresh_token"},
        )
        return TokenGrant(**body)

    # --- Data ---

    @staticmethod
    def _filter_params(filters: typing.Optional[dict]) -> dict:
        return {column: f"eq.{value}" for column, value in (filters or {}).items()}

    async def select(self, table: str, filters: typing.Optional[dict] = None,
                     order: typing.Optional[str] = None, access_token: typing.Optional[str] = None,
                     columns: str = "*", single: bool = False) -> typing.Any:
        params = self._filter_params(filters)
        params["select"] = columns
        if order:
            params["order"] = order
        rows = await self._request("GET", f"{self.rest_url}/{table}", access_token=access_token, params=params)
        rows = rows or []
        if single:
            return rows[0] if rows else None
        return rows

    async def insert(self, table: str, row: dict, access_token: typing.Optional[str] = None,
                     returning: bool = False) -> typing.Any:
        prefer = "return=representation" if returning else "return=minimal"
        result = await self._request(
            "POST", f"{self.rest_url}/{table}", access_token=access_token, json=row,
            headers={"Prefer": prefer},
        )
        if returning and isinstance(result, list):
            return result[0] if result else None
        return result

    async def update(self, table: str, values: dict, filters: dict,
                     access_token: typing.Optional[str] = None) -> typing.Any:
        return await self._request(
            "PATCH", f"{self.rest_url}/{table}", access_token=access_token, json=values,
            params=self._filter_params(filters), headers={"Prefer": "return=minimal"},
        )

    async def upsert(self, table: str, row: dict, access_token: typing.Optional[str] = None) -> typing.Any:
        return await self._request(
            "POST", f"{self.rest_url}/{table}", access_token=access_token, json=row,
            headers={"Prefer": "resolution=merge-duplicates,return=minimal"},
        )

    async def delete(self, table: str, filters: dict, access_token: typing.Optional[str] = None) -> typing.Any:
        return await self._request(
            "DELETE", f"{self.rest_url}/{table}", access_token=access_token,
            params=self._filter_params(filters),
        )

    async def rpc(self, function: str, params: typing.Optional[dict] = None,
                  access_token: typing.Optional[str] = None) -> typing.Any:
        return await self._request(
            "POST", f"{self.rest_url}/rpc/{function}", access_token=access_token, json=params or {},
        )
