"""Token-endpoint POST shared by both identity-provider adapters."""

from typing import Any, Dict, Optional
from urllib.parse import parse_qs

import httpx


class OAuthTokenError(Exception):
    """Raised when an OAuth2 token endpoint returns an error response."""


async def request_tokens(
    token_endpoint: str,
    data: Dict[str, str],
    timeout: float,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Dict[str, Any]:
    """
    POST a grant to a token endpoint and return the decoded response.

    Raises:
        OAuthTokenError: The endpoint answered with an OAuth error body or
            no ``access_token``.
        httpx.HTTPError: Transport failure, timeout, or non-2xx status.
    """
    # Request JSON; some providers still default to form-encoded
    headers = {"Accept": "application/json"}

    async with httpx.AsyncClient(transport=transport, timeout=timeout) as client:
        resp = await client.post(token_endpoint, data=data, headers=headers)

        if resp.status_code in (400, 401):
            # RFC 6749 §5.2 error responses, e.g. invalid_grant
            try:
                body = resp.json()
            except ValueError:
                body = {}
            error = body.get("error", f"http_{resp.status_code}")
            desc = body.get("error_description", "")
            raise OAuthTokenError(
                f"Token endpoint returned error: {error}" + (f" ({desc})" if desc else "")
            )
        resp.raise_for_status()

        content_type = resp.headers.get("content-type", "")
        if "application/json" in content_type:
            result = resp.json()
        else:
            parsed = parse_qs(resp.text)
            result = {k: v[0] if len(v) == 1 else v for k, v in parsed.items()}

    # Some providers report errors as HTTP 200 with an "error" field
    if "error" in result:
        error = result["error"]
        desc = result.get("error_description", "")
        raise OAuthTokenError(
            f"Token endpoint returned error: {error}" + (f" ({desc})" if desc else "")
        )

    if "access_token" not in result:
        raise OAuthTokenError("Token endpoint response missing access_token")

    return result
