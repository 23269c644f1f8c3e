"""Google Cloud Storage backend built on google-cloud-storage."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, TypeVar

from .interfaces import NotFoundError, RemoteOperationError
from .object_filesystem import ObjectFileSystem
from .options import ObjectStoreOptions
from .path_utils import file_uri
from .remote import (
    ListPage,
    ObjectAttributes,
    ObjectEntry,
    ObjectVersion,
    PipeReader,
    PipeUpload,
)

if TYPE_CHECKING:
    from collections.abc import Hashable

T = TypeVar("T")

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GCSOptions(ObjectStoreOptions):
    """GCS connection settings.

    ``credentials_file`` points at a service account JSON key; without it the
    application default credentials are used.
    """

    project: str | None = None
    credentials_file: str | None = None
    endpoint_url: str | None = None


class GCSObjectClient:
    """Adapts a ``google.cloud.storage.Client`` to the object store protocol."""

    def __init__(self, gcs: Any) -> None:
        try:
            from google.api_core import exceptions as gcs_exceptions
        except ImportError as exc:  # pragma: no cover - depends on environment
            raise RemoteOperationError.missing_dependency("google-api-core") from exc
        self._gcs = gcs
        self._not_found = gcs_exceptions.NotFound
        self._api_error = gcs_exceptions.GoogleAPIError

    def _call(self, path: str, operation: Callable[[], T]) -> T:
        try:
            return operation()
        except self._not_found as exc:
            raise NotFoundError(path) from exc
        except self._api_error as exc:
            message = "GCS request failed"
            raise RemoteOperationError(message, path=path, cause=exc) from exc

    def _existing_blob(self, container: str, key: str) -> Any:
        uri = file_uri("gs", container, key)
        blob = self._call(uri, lambda: self._gcs.bucket(container).get_blob(key))
        if blob is None:
            raise NotFoundError(uri)
        return blob

    def head(self, container: str, key: str) -> ObjectAttributes:
        blob = self._existing_blob(container, key)
        return ObjectAttributes(
            size=int(blob.size or 0),
            last_modified=blob.updated,
            content_type=blob.content_type,
            metadata=dict(blob.metadata or {}),
        )

    def range_read(self, container: str, key: str, start: int) -> Any:
        blob = self._gcs.bucket(container).blob(key)

        def open_reader() -> Any:
            reader = blob.open("rb")
            if start > 0:
                reader.seek(start)
            return reader

        return self._call(file_uri("gs", container, key), open_reader)

    def stream_write(
        self,
        container: str,
        key: str,
        content_type: str | None = None,
    ) -> PipeUpload:
        uri = file_uri("gs", container, key)
        blob = self._gcs.bucket(container).blob(key)

        def upload(reader: PipeReader) -> None:
            self._call(
                uri,
                lambda: blob.upload_from_file(reader, content_type=content_type),
            )

        return PipeUpload(upload, name=uri)

    def copy(
        self,
        source_container: str,
        source_key: str,
        dest_container: str,
        dest_key: str,
        content_type: str | None = None,
    ) -> None:
        source = self._existing_blob(source_container, source_key)

        def run() -> None:
            source_bucket = self._gcs.bucket(source_container)
            dest_bucket = self._gcs.bucket(dest_container)
            copied = source_bucket.copy_blob(source, dest_bucket, dest_key)
            if content_type and copied.content_type != content_type:
                copied.content_type = content_type
                copied.patch()

        # The source was found above, so a not-found here is the destination.
        self._call(file_uri("gs", dest_container, dest_key), run)

    def remove(
        self,
        container: str,
        key: str,
        version_id: str | None = None,
    ) -> None:
        generation = int(version_id) if version_id is not None else None
        self._call(
            file_uri("gs", container, key),
            lambda: self._gcs.bucket(container).delete_blob(key, generation=generation),
        )

    def list_versions(self, container: str, prefix: str) -> list[ObjectVersion]:
        def collect() -> list[ObjectVersion]:
            return [
                ObjectVersion(key=blob.name, version_id=str(blob.generation))
                for blob in self._gcs.list_blobs(container, prefix=prefix, versions=True)
            ]

        return self._call(file_uri("gs", container, prefix), collect)

    def list_objects(
        self,
        container: str,
        prefix: str,
        delimiter: str,
        token: str | None = None,
    ) -> ListPage:
        def fetch() -> ListPage:
            iterator = self._gcs.list_blobs(
                container,
                prefix=prefix or None,
                delimiter=delimiter or None,
                page_token=token,
            )
            page = next(iterator.pages, None)
            entries = (
                [ObjectEntry(key=blob.name, size=int(blob.size or 0)) for blob in page]
                if page is not None
                else []
            )
            next_token = iterator.next_page_token
            return ListPage(
                entries=entries,
                next_token=next_token,
                is_truncated=next_token is not None,
            )

        return self._call(file_uri("gs", container, prefix), fetch)

    def container_exists(self, container: str) -> bool:
        try:
            self._call(f"gs://{container}", lambda: self._gcs.get_bucket(container))
        except NotFoundError:
            return False
        return True

    def update_metadata(
        self,
        container: str,
        key: str,
        metadata: dict[str, str],
    ) -> None:
        blob = self._existing_blob(container, key)
        # Patching merges keys, so dropped ones must be cleared explicitly.
        patch: dict[str, str | None] = {
            name: None for name in (blob.metadata or {}) if name not in metadata
        }
        patch.update(metadata)
        blob.metadata = patch
        self._call(file_uri("gs", container, key), blob.patch)

    def versioning_enabled(self, container: str) -> bool:
        bucket = self._call(f"gs://{container}", lambda: self._gcs.get_bucket(container))
        return bool(bucket.versioning_enabled)


class GCSFileSystem(ObjectFileSystem):
    """FileSystem for the ``gs`` scheme."""

    scheme = "gs"
    name = "Google Cloud Storage"
    options_class = GCSOptions

    def __init__(
        self,
        options: GCSOptions | None = None,
        *,
        client: Any | None = None,
        gcs_client: Any | None = None,
    ) -> None:
        super().__init__(options, client=client)
        self._gcs_client = gcs_client

    @property
    def options(self) -> GCSOptions:
        return self._options

    def _build_client(self) -> GCSObjectClient:
        gcs = self._gcs_client if self._gcs_client is not None else self._new_gcs_client()
        return GCSObjectClient(gcs)

    def _new_gcs_client(self) -> Any:
        try:
            from google.cloud import storage
        except ImportError as exc:  # pragma: no cover - depends on environment
            raise RemoteOperationError.missing_dependency("google-cloud-storage") from exc

        options = self.options
        client_options = (
            {"api_endpoint": options.endpoint_url} if options.endpoint_url else None
        )
        if options.credentials_file:
            return storage.Client.from_service_account_json(
                options.credentials_file,
                project=options.project,
                client_options=client_options,
            )
        return storage.Client(project=options.project, client_options=client_options)

    def credential_scope(self) -> Hashable:
        options = self.options
        return (
            options.credentials_file,
            options.endpoint_url,
            id(self._gcs_client) if self._gcs_client is not None else None,
            self._injected_client_id(),
        )
