"""Account linking: trade a one-time Shapes code for a user auth token."""

import asyncio
import logging

import aiohttp

from tenshi_bot.errors import LinkingError
from tenshi_bot.storage.database import Persistence

logger = logging.getLogger(__name__)

STATUS_MESSAGES = {
    400: "Invalid or expired authentication code.",
    401: "Unauthorized. The app ID may be invalid.",
    429: "Too many authentication attempts. Please try again later.",
}


class AccountLinker:
    """Exchanges one-time codes against the Shapes auth service.

    A successful exchange stores the token, which moves the user to the
    authenticated tier on their next message.
    """

    def __init__(
        self,
        persistence: Persistence,
        auth_base_url: str,
        app_id: str | None,
        timeout: float = 10.0,
    ):
        self._db = persistence
        self._auth_base_url = auth_base_url.rstrip("/")
        self._app_id = app_id
        self._timeout = timeout
        self._session: aiohttp.ClientSession | None = None

    @property
    def app_id(self) -> str | None:
        return self._app_id

    def authorize_url(self) -> str | None:
        """Where a user goes to obtain a one-time code."""
        if not self._app_id:
            return None
        return f"https://shapes.inc/authorize?app_id={self._app_id}"

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create the aiohttp session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self._timeout),
            )
        return self._session

    async def close(self) -> None:
        """Close the aiohttp session."""
        if self._session and not self._session.closed:
            await self._session.close()

    async def exchange_code(self, code: str) -> str:
        """Trade a one-time code for an auth token.

        Raises:
            LinkingError: With a user-presentable message on any failure
        """
        if not self._app_id:
            raise LinkingError("Account linking is not configured (missing app ID).")
        code = code.strip()
        if not code:
            raise LinkingError("Please provide the code from the Shapes authorization page.")

        url = f"{self._auth_base_url}/nonce"
        try:
            session = await self._get_session()
            async with session.post(url, json={"app_id": self._app_id, "code": code}) as response:
                if response.status != 200:
                    detail = await response.text()
                    logger.warning(f"LINK: exchange failed HTTP {response.status}: {detail[:200]}")
                    message = STATUS_MESSAGES.get(
                        response.status,
                        f"Authentication failed (HTTP {response.status}).",
                    )
                    raise LinkingError(message)
                data = await response.json(content_type=None)
        except aiohttp.ClientConnectorError as e:
            logger.warning(f"LINK: cannot reach auth service: {e}")
            raise LinkingError("Unable to connect to the authentication service.") from e
        except asyncio.TimeoutError as e:
            logger.warning("LINK: auth service timed out")
            raise LinkingError("Authentication request timed out.") from e
        except (aiohttp.ClientError, ValueError) as e:
            logger.warning(f"LINK: exchange failed: {e!r}")
            raise LinkingError("Authentication failed. Please try again.") from e

        token = data.get("auth_token") if isinstance(data, dict) else None
        if not token:
            raise LinkingError("No auth token received from the authentication service.")
        return token

    async def link(self, user_id: str, code: str) -> None:
        """Exchange a code and store the resulting token for a user."""
        token = await self.exchange_code(code)
        await self._db.store_auth_token(user_id, token, self._app_id or "")
        logger.info(f"LINK: user={user_id} linked (app_id={self._app_id})")
