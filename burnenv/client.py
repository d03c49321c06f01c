"""
Drop Client — aiohttp client for a BurnEnv drop server.

All cryptography happens here, on the caller's side; the server only ever
receives sealed envelopes.

Example:
    async with DropClient("http://localhost:8080") as client:
        link = await client.share(b"DB_PASSWORD=hunter2", "correct horse", ttl=600)
        secret = await client.receive(link, "correct horse")
"""
import time
import asyncio
import logging
from functools import partial
from typing import Optional

import orjson
import aiohttp

from .crypto import (
    Envelope,
    KDFParams,
    seal,
    open_envelope,
    serialize_envelope,
    deserialize_envelope,
)
from .exceptions import RemoteError

logger = logging.getLogger("burnenv.client")


class DropClient:
    """Async client for the drop API.

    Args:
        base_url: Server base url, e.g. ``http://localhost:8080``.
        session: Existing ClientSession to reuse; one is created (and
            closed by :meth:`close`) when omitted.
        timeout: Total per-request timeout in seconds.
    """

    def __init__(
        self,
        base_url: str,
        session: Optional[aiohttp.ClientSession] = None,
        timeout: float = 30.0,
    ):
        self.base_url = base_url.rstrip("/")
        self._session = session
        self._owns_session = session is None
        self._timeout = aiohttp.ClientTimeout(total=timeout)

    async def __aenter__(self) -> "DropClient":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()

    async def close(self) -> None:
        if self._owns_session and self._session is not None:
            await self._session.close()
        self._session = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
            self._owns_session = True
        return self._session

    def _resolve(self, link: str) -> str:
        """Accept either a full drop link or a bare identifier."""
        if link.startswith(("http://", "https://")):
            return link
        return f"{self.base_url}/v1/drop/{link}"

    @staticmethod
    async def _remote_error(resp: aiohttp.ClientResponse) -> RemoteError:
        message = f"server returned {resp.status}"
        try:
            data = orjson.loads(await resp.read())
            if isinstance(data, dict) and data.get("error"):
                message = f"server: {data['error']}"
        except orjson.JSONDecodeError:
            pass
        return RemoteError(message, status=resp.status)

    # ------------------------------------------------------------------
    # Wire operations
    # ------------------------------------------------------------------

    async def create(self, envelope: Envelope) -> str:
        """Upload an envelope.

        Args:
            envelope: Sealed envelope with expiry and max_views set.

        Returns:
            The drop link returned by the server.

        Raises:
            RemoteError: If the server rejects the envelope.
        """
        session = self._get_session()
        async with session.post(
            f"{self.base_url}/v1/drop",
            data=serialize_envelope(envelope),
            headers={"Content-Type": "application/json"},
        ) as resp:
            if resp.status != 201:
                raise await self._remote_error(resp)
            data = orjson.loads(await resp.read())
        logger.debug("Created drop %s", data["id"][:8])
        return data["link"]

    async def fetch(self, link: str) -> Envelope:
        """Download an envelope; this consumes one view on the server.

        Raises:
            RemoteError: If the drop is gone or the server fails.
            StructuralError: If the server returned a malformed envelope.
        """
        session = self._get_session()
        async with session.get(self._resolve(link)) as resp:
            if resp.status != 200:
                raise await self._remote_error(resp)
            body = await resp.read()
        return deserialize_envelope(body)

    async def revoke(self, link: str) -> bool:
        """Destroy a drop before it burns on its own.

        Returns:
            True if the server removed it, False if it was already gone.

        Raises:
            RemoteError: On any status other than 200 or 404.
        """
        session = self._get_session()
        async with session.delete(self._resolve(link)) as resp:
            if resp.status == 200:
                return True
            if resp.status == 404:
                return False
            raise await self._remote_error(resp)

    # ------------------------------------------------------------------
    # Seal + upload helpers
    # ------------------------------------------------------------------

    async def share(
        self,
        plaintext: bytes,
        password: str,
        ttl: int = 600,
        max_views: int = 1,
        kdf: Optional[KDFParams] = None,
    ) -> str:
        """Seal a secret locally and upload it.

        Key derivation is memory-hard, so sealing runs in the default
        executor instead of on the event loop.

        Args:
            plaintext: Secret bytes.
            password: Password the recipients will need.
            ttl: Seconds until the drop expires.
            max_views: Number of retrievals allowed.
            kdf: Argon2id parameters; defaults when omitted.

        Returns:
            The drop link.
        """
        loop = asyncio.get_running_loop()
        envelope = await loop.run_in_executor(
            None, partial(seal, plaintext, password, kdf),
        )
        envelope = envelope.with_policy(
            expiry=int(time.time()) + ttl, max_views=max_views,
        )
        return await self.create(envelope)

    async def receive(self, link: str, password: str) -> bytes:
        """Fetch a drop and open it locally.

        Raises:
            RemoteError: If the drop is gone.
            AuthFailure: If the password is wrong or the envelope was altered.
        """
        envelope = await self.fetch(link)
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            None, partial(open_envelope, envelope, password),
        )
