"""Firestore document store adapter."""

from collections.abc import Mapping
from datetime import datetime
from typing import Any, Protocol

import structlog
from google.api_core import exceptions as google_exceptions
from google.auth import exceptions as auth_exceptions
from google.cloud import firestore
from google.cloud.firestore_v1.base_query import FieldFilter
from google.oauth2 import service_account

from manager_digest.config import get_settings

logger = structlog.get_logger(__name__)

Document = dict[str, Any]


class StoreError(Exception):
    """A document store read failed."""

    def __init__(self, message: str, collection: str | None = None):
        super().__init__(message)
        self.collection = collection


class StoreConfigurationError(StoreError):
    """The store credentials cannot be used."""


class DocumentStore(Protocol):
    """Read-only query interface the reporting job needs from a store."""

    async def fetch_all(self, collection: str) -> list[tuple[str, Document]]:
        """Return ``(document_id, data)`` for every document in a collection."""
        ...

    async def query(
        self,
        collection: str,
        equals: Mapping[str, Any],
        created_between: tuple[datetime, datetime] | None = None,
        timestamp_field: str = "createdAt",
    ) -> list[Document]:
        """Return documents matching every equality filter.

        When ``created_between`` is given, ``timestamp_field`` must also
        fall inside the inclusive range.
        """
        ...


class FirestoreStore:
    """Async Firestore adapter built from service account credentials.

    Credentials are parsed on construction so a malformed bundle fails at
    startup rather than on the first scheduled run.
    """

    def __init__(
        self,
        service_account_info: Mapping[str, Any] | None = None,
        client: Any | None = None,
    ):
        self._info = dict(service_account_info or get_settings().service_account_info())
        self._client = client
        self._credentials: service_account.Credentials | None = None
        if client is None:
            try:
                self._credentials = service_account.Credentials.from_service_account_info(
                    self._info
                )
            except (ValueError, auth_exceptions.GoogleAuthError) as e:
                raise StoreConfigurationError(f"Invalid service account credentials: {e}") from e
        self._logger = logger.bind(component="firestore_store")

    def _get_client(self) -> Any:
        """Get or create the Firestore client."""
        if self._client is None:
            self._client = firestore.AsyncClient(
                project=self._info.get("project_id"),
                credentials=self._credentials,
            )
            self._logger.info("firestore_client_created", project=self._info.get("project_id"))
        return self._client

    def close(self) -> None:
        """Drop the client; the next call reconnects."""
        self._client = None

    async def fetch_all(self, collection: str) -> list[tuple[str, Document]]:
        try:
            client = self._get_client()
            documents = [
                (snapshot.id, snapshot.to_dict() or {})
                async for snapshot in client.collection(collection).stream()
            ]
        except (google_exceptions.GoogleAPIError, auth_exceptions.GoogleAuthError) as e:
            raise StoreError(f"Failed to read {collection}: {e}", collection=collection) from e

        self._logger.debug("collection_fetched", collection=collection, count=len(documents))
        return documents

    async def query(
        self,
        collection: str,
        equals: Mapping[str, Any],
        created_between: tuple[datetime, datetime] | None = None,
        timestamp_field: str = "createdAt",
    ) -> list[Document]:
        try:
            query = self._get_client().collection(collection)
            for field_name, value in equals.items():
                query = query.where(filter=FieldFilter(field_name, "==", value))
            if created_between is not None:
                start, end = created_between
                query = query.where(filter=FieldFilter(timestamp_field, ">=", start))
                query = query.where(filter=FieldFilter(timestamp_field, "<=", end))

            documents = [snapshot.to_dict() or {} async for snapshot in query.stream()]
        except (google_exceptions.GoogleAPIError, auth_exceptions.GoogleAuthError) as e:
            raise StoreError(f"Failed to query {collection}: {e}", collection=collection) from e

        self._logger.debug(
            "collection_queried",
            collection=collection,
            filters=sorted(equals),
            ranged=created_between is not None,
            count=len(documents),
        )
        return documents
