"""Amazon S3 backend built on boto3.

Example:
    >>> from f9_vfs.s3_backend import S3FileSystem, S3Options
    >>> fs = S3FileSystem(S3Options(region="eu-west-1"))
    >>> with fs.new_file("my-bucket", "/reports/2024.csv") as f:
    ...     f.write(b"id,total\\n")

Credentials come from the usual boto3 chain unless ``access_key_id`` and
``secret_access_key`` (or ``profile``) are set.
"""

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

NOT_FOUND_CODES = frozenset(
    {"404", "NoSuchKey", "NoSuchBucket", "NoSuchVersion", "NotFound"},
)


@dataclass(frozen=True)
class S3Options(ObjectStoreOptions):
    """S3 connection and upload settings."""

    region: str | None = None
    endpoint_url: str | None = None
    access_key_id: str | None = None
    secret_access_key: str | None = None
    session_token: str | None = None
    profile: str | None = None
    acl: str = "private"
    server_side_encryption: str = "AES256"
    force_path_style: bool = False
    max_attempts: int = 3


class S3ObjectClient:
    """Adapts a boto3 S3 client to :class:`~f9_vfs.remote.ObjectStoreClient`."""

    def __init__(self, s3: Any, options: S3Options) -> None:
        try:
            from botocore.exceptions import BotoCoreError, ClientError
        except ImportError as exc:  # pragma: no cover - depends on environment
            raise RemoteOperationError.missing_dependency("botocore") from exc
        self._s3 = s3
        self._options = options
        self._client_error = ClientError
        self._botocore_error = BotoCoreError

    def _call(self, path: str, operation: Callable[[], T]) -> T:
        try:
            return operation()
        except self._client_error as exc:
            code = str(exc.response.get("Error", {}).get("Code", ""))
            if code in NOT_FOUND_CODES:
                raise NotFoundError(path) from exc
            message = f"S3 request failed ({code or 'unknown'})"
            raise RemoteOperationError(message, path=path, cause=exc) from exc
        except self._botocore_error as exc:
            message = "S3 request failed"
            raise RemoteOperationError(message, path=path, cause=exc) from exc

    def _extra_args(self, content_type: str | None) -> dict[str, str]:
        extra: dict[str, str] = {}
        if self._options.acl:
            extra["ACL"] = self._options.acl
        if self._options.server_side_encryption:
            extra["ServerSideEncryption"] = self._options.server_side_encryption
        if content_type:
            extra["ContentType"] = content_type
        return extra

    def head(self, container: str, key: str) -> ObjectAttributes:
        response = self._call(
            file_uri("s3", container, key),
            lambda: self._s3.head_object(Bucket=container, Key=key),
        )
        return ObjectAttributes(
            size=int(response.get("ContentLength", 0)),
            last_modified=response["LastModified"],
            content_type=response.get("ContentType"),
            metadata=dict(response.get("Metadata", {})),
        )

    def _key_exists(self, container: str, key: str) -> bool:
        try:
            self.head(container, key)
        except NotFoundError:
            return False
        return True

    def range_read(self, container: str, key: str, start: int) -> Any:
        kwargs: dict[str, Any] = {"Bucket": container, "Key": key}
        if start > 0:
            kwargs["Range"] = f"bytes={start}-"
        response = self._call(
            file_uri("s3", container, key),
            lambda: self._s3.get_object(**kwargs),
        )
        return response["Body"]

    def stream_write(
        self,
        container: str,
        key: str,
        content_type: str | None = None,
    ) -> PipeUpload:
        uri = file_uri("s3", container, key)
        extra_args = self._extra_args(content_type)

        def upload(reader: PipeReader) -> None:
            self._call(
                uri,
                lambda: self._s3.upload_fileobj(
                    reader,
                    container,
                    key,
                    ExtraArgs=extra_args,
                ),
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
        kwargs: dict[str, Any] = {
            "Bucket": dest_container,
            "Key": dest_key,
            "CopySource": {"Bucket": source_container, "Key": source_key},
            "MetadataDirective": "COPY",
            **self._extra_args(None),
        }
        if content_type:
            source = self.head(source_container, source_key)
            kwargs.update(
                MetadataDirective="REPLACE",
                ContentType=content_type,
                Metadata=source.metadata,
            )
        try:
            self._call(
                file_uri("s3", source_container, source_key),
                lambda: self._s3.copy_object(**kwargs),
            )
        except NotFoundError as exc:
            # NoSuchBucket does not say which side is missing.
            if not self._key_exists(source_container, source_key):
                raise
            raise NotFoundError(file_uri("s3", dest_container, dest_key)) from exc

    def remove(
        self,
        container: str,
        key: str,
        version_id: str | None = None,
    ) -> None:
        kwargs: dict[str, Any] = {"Bucket": container, "Key": key}
        if version_id is not None:
            kwargs["VersionId"] = version_id
        self._call(
            file_uri("s3", container, key),
            lambda: self._s3.delete_object(**kwargs),
        )

    def list_versions(self, container: str, prefix: str) -> list[ObjectVersion]:
        def collect() -> list[ObjectVersion]:
            paginator = self._s3.get_paginator("list_object_versions")
            versions: list[ObjectVersion] = []
            for page in paginator.paginate(Bucket=container, Prefix=prefix):
                for item in [*page.get("Versions", []), *page.get("DeleteMarkers", [])]:
                    versions.append(
                        ObjectVersion(key=item["Key"], version_id=item["VersionId"]),
                    )
            return versions

        return self._call(file_uri("s3", container, prefix), collect)

    def list_objects(
        self,
        container: str,
        prefix: str,
        delimiter: str,
        token: str | None = None,
    ) -> ListPage:
        kwargs: dict[str, Any] = {"Bucket": container, "Prefix": prefix}
        if delimiter:
            kwargs["Delimiter"] = delimiter
        if token:
            kwargs["ContinuationToken"] = token
        response = self._call(
            file_uri("s3", container, prefix),
            lambda: self._s3.list_objects_v2(**kwargs),
        )
        entries = [
            ObjectEntry(key=item["Key"], size=int(item.get("Size", 0)))
            for item in response.get("Contents", [])
        ]
        return ListPage(
            entries=entries,
            next_token=response.get("NextContinuationToken"),
            is_truncated=bool(response.get("IsTruncated", False)),
        )

    def container_exists(self, container: str) -> bool:
        try:
            self._call(
                f"s3://{container}",
                lambda: self._s3.head_bucket(Bucket=container),
            )
        except NotFoundError:
            return False
        return True

    def update_metadata(
        self,
        container: str,
        key: str,
        metadata: dict[str, str],
    ) -> None:
        """Rewrite the object onto itself with new metadata.

        A self-copy resets the ACL and encryption to the bucket defaults, so
        both are read first and carried over rather than taken from options.
        """
        uri = file_uri("s3", container, key)
        current = self._call(
            uri,
            lambda: self._s3.head_object(Bucket=container, Key=key),
        )
        acl = self._call(
            uri,
            lambda: self._s3.get_object_acl(Bucket=container, Key=key),
        )
        kwargs: dict[str, Any] = {
            "Bucket": container,
            "Key": key,
            "CopySource": {"Bucket": container, "Key": key},
            "MetadataDirective": "REPLACE",
            "Metadata": metadata,
        }
        for field_name in ("ContentType", "ServerSideEncryption", "SSEKMSKeyId"):
            if current.get(field_name):
                kwargs[field_name] = current[field_name]
        self._call(uri, lambda: self._s3.copy_object(**kwargs))
        self._call(
            uri,
            lambda: self._s3.put_object_acl(
                Bucket=container,
                Key=key,
                AccessControlPolicy={"Grants": acl["Grants"], "Owner": acl["Owner"]},
            ),
        )

    def versioning_enabled(self, container: str) -> bool:
        response = self._call(
            f"s3://{container}",
            lambda: self._s3.get_bucket_versioning(Bucket=container),
        )
        return response.get("Status") == "Enabled"


class S3FileSystem(ObjectFileSystem):
    """FileSystem for the ``s3`` scheme."""

    scheme = "s3"
    name = "AWS S3"
    options_class = S3Options

    def __init__(
        self,
        options: S3Options | None = None,
        *,
        client: Any | None = None,
        s3_client: Any | None = None,
    ) -> None:
        """Initialise the filesystem.

        Args:
            options: Connection and upload settings.
            client: Ready-made :class:`~f9_vfs.remote.ObjectStoreClient`.
            s3_client: Pre-authenticated boto3 S3 client to adapt instead of
                building one from ``options``.

        """
        super().__init__(options, client=client)
        self._s3_client = s3_client

    @property
    def options(self) -> S3Options:
        return self._options

    def _build_client(self) -> S3ObjectClient:
        s3 = self._s3_client if self._s3_client is not None else self._new_s3_client()
        return S3ObjectClient(s3, self.options)

    def _new_s3_client(self) -> Any:
        try:
            import boto3
            from botocore.config import Config as BotoConfig
        except ImportError as exc:  # pragma: no cover - depends on environment
            raise RemoteOperationError.missing_dependency("boto3") from exc

        options = self.options
        session = boto3.session.Session(
            aws_access_key_id=options.access_key_id,
            aws_secret_access_key=options.secret_access_key,
            aws_session_token=options.session_token,
            region_name=options.region,
            profile_name=options.profile,
        )
        config = BotoConfig(
            signature_version="s3v4",
            retries={"max_attempts": options.max_attempts, "mode": "standard"},
            s3={"addressing_style": "path" if options.force_path_style else "auto"},
        )
        return session.client("s3", endpoint_url=options.endpoint_url, config=config)

    def credential_scope(self) -> Hashable:
        options = self.options
        return (
            options.access_key_id,
            options.profile,
            options.endpoint_url,
            id(self._s3_client) if self._s3_client is not None else None,
            self._injected_client_id(),
        )
