"""OAuth account linking.

Flow::

    GET /login           -> begin_login()     -> 302 to the provider
    GET /oauth?code&state -> complete_login()  -> token exchange, persist

The linker owns ``user/<user_id>`` and ``user/<user_id>/thermostat/*``.
It never writes device snapshots; those belong to the telemetry relay.
"""

from __future__ import annotations

import logging
from urllib.parse import urlencode

from nestrelay._constants import ACCESS_TOKEN_FIELD, USER_COLLECTION, user_thermostats
from nestrelay.config import RelayConfig
from nestrelay.exceptions import BadRequestError, InvalidDataError
from nestrelay.models.nest import NestSnapshot
from nestrelay.models.records import LinkedAccount
from nestrelay.provider import TelemetryProvider
from nestrelay.state_tokens import StateTokenManager
from nestrelay.store import DocumentStore

_logger = logging.getLogger(__name__)


class OAuthLinker:
    """Links a provider account to the relay through the authorization-code flow."""

    def __init__(
        self,
        config: RelayConfig,
        store: DocumentStore,
        provider: TelemetryProvider,
        *,
        tokens: StateTokenManager | None = None,
    ) -> None:
        self._config = config
        self._store = store
        self._provider = provider
        self._tokens = tokens if tokens is not None else StateTokenManager(store)

    async def begin_login(self) -> str:
        """Create a state token and return the provider authorization URL."""
        state = await self._tokens.create_token()
        query = urlencode({"client_id": self._config.client_id, "state": state})
        return f"{self._config.auth_url}?{query}"

    async def complete_login(self, code: str | None, state: str | None) -> LinkedAccount:
        """Finish the flow started by :meth:`begin_login`.

        Raises
        ------
        BadRequestError
            ``code`` or ``state`` is missing; nothing is read or written.
        ForbiddenError
            The state is unknown or already used, or the provider rejected
            the code or the resulting token.
        UpstreamUnavailableError
            The provider could not be reached.
        StoreUnavailableError
            A write failed; records written before the failure remain.
        """
        if not code or not state:
            raise BadRequestError("missing code or state")

        await self._tokens.validate_and_consume(state)

        access_token = await self._provider.exchange_code_for_token(code)
        snapshot = await self._provider.fetch_snapshot(access_token)
        account = await self.save_snapshot(snapshot)
        _logger.info("Linked user %s with %d thermostat(s)", account.user_id, len(snapshot.thermostats))
        return account

    async def save_snapshot(self, snapshot: NestSnapshot) -> LinkedAccount:
        """Persist the linked account and one record per thermostat.

        Whole-document overwrites, one at a time; the first failed write
        aborts the loop.
        """
        account = LinkedAccount(
            user_id=snapshot.metadata.user_id,
            access_token=snapshot.metadata.access_token,
        )
        await self._store.set(USER_COLLECTION, account.user_id, account.to_document())

        collection = user_thermostats(account.user_id)
        for device_id, attributes in snapshot.thermostats.items():
            await self._store.set(collection, device_id, attributes)
        return account

    async def list_linked_accounts(self) -> dict[str, str]:
        """Map every linked user id to its stored access token.

        Raises
        ------
        InvalidDataError
            A user document lacks a string access token.
        """
        accounts: dict[str, str] = {}
        for doc in await self._store.list_all(USER_COLLECTION):
            token = doc.data.get(ACCESS_TOKEN_FIELD)
            if token is None:
                raise InvalidDataError(f"user missing access token: {doc.id}")
            if not isinstance(token, str):
                raise InvalidDataError(f"access token was not a string: {token!r}")
            accounts[doc.id] = token
        return accounts
