import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, List, Optional

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError, ProfileNotFound

from .errors import IoFailure, RemoteFailure, UsageError

logger = logging.getLogger(__name__)

PUBLIC_READ_ACL = "public-read"


@dataclass(frozen=True)
class ClientConfig:
    bucket: str
    region: str
    endpoint_url: Optional[str] = None
    profile: Optional[str] = None
    use_path_style: bool = False
    make_public: bool = False


@dataclass
class UploadTask:
    local_path: Path
    key: str


@dataclass
class ListPage:
    objects: List[str]
    continuation_token: Optional[str] = None


class EnvironmentCredentials:
    """Read AWS credentials from the standard environment variables.

    Returns None when they are not set so boto3 falls back to its own chain
    (shared config, instance metadata, ...).
    """

    def resolve(self) -> Optional[dict]:
        access = os.getenv("AWS_ACCESS_KEY_ID")
        secret = os.getenv("AWS_SECRET_ACCESS_KEY")
        token = os.getenv("AWS_SESSION_TOKEN")

        if access and secret:
            creds = {"aws_access_key_id": access, "aws_secret_access_key": secret}
            if token:
                creds["aws_session_token"] = token
            return creds
        return None


class StaticCredentials:
    """Fixed credentials, mostly useful in tests."""

    def __init__(self, access_key: str, secret_key: str, session_token: Optional[str] = None) -> None:
        self.access_key = access_key
        self.secret_key = secret_key
        self.session_token = session_token

    def resolve(self) -> Optional[dict]:
        creds = {"aws_access_key_id": self.access_key, "aws_secret_access_key": self.secret_key}
        if self.session_token:
            creds["aws_session_token"] = self.session_token
        return creds


def make_s3_client(config: ClientConfig, credentials=None):
    session_kwargs = {}
    if config.profile:
        session_kwargs["profile_name"] = config.profile
    session = boto3.session.Session(**session_kwargs)
    boto_cfg = BotoConfig(s3={"addressing_style": "path" if config.use_path_style else "virtual"})
    client_kwargs = {"region_name": config.region, "config": boto_cfg, "endpoint_url": config.endpoint_url}
    resolved = (credentials or EnvironmentCredentials()).resolve()
    if resolved:
        client_kwargs.update(resolved)
    return session.client("s3", **{k: v for k, v in client_kwargs.items() if v is not None})


def object_url(bucket: str, region: str, key: str) -> str:
    return f"https://{bucket}.s3.{region}.amazonaws.com/{key}"


def _to_page(resp: dict) -> ListPage:
    keys = [obj["Key"] for obj in resp.get("Contents", []) or [] if obj.get("Key")]
    next_token = resp.get("NextContinuationToken") if resp.get("IsTruncated") else None
    return ListPage(objects=keys, continuation_token=next_token)


class S3Storage:
    """Thin adapter over a boto3 S3 client.

    All botocore failures surface as RemoteFailure and local read failures as
    IoFailure. Nothing is retried here; botocore's own retry handler is the
    only one in play.
    """

    def __init__(self, client, make_public: bool = False) -> None:
        self._s3 = client
        self.make_public = make_public

    @classmethod
    def from_config(cls, config: ClientConfig, credentials=None) -> "S3Storage":
        try:
            client = make_s3_client(config, credentials)
        except (ProfileNotFound, ValueError) as e:
            # ValueError: botocore rejects a malformed endpoint URL
            raise UsageError(str(e)) from e
        return cls(client, make_public=config.make_public)

    def put_object(self, bucket: str, key: str, file_path) -> None:
        """Upload the whole file at `file_path` to `bucket/key`.

        The file is read into memory in one go, so it must fit. An existing
        object under the same key is overwritten.
        """
        try:
            with open(file_path, "rb") as fp:
                body = fp.read()
        except OSError as e:
            raise IoFailure(f"cannot read {file_path}: {e}") from e

        kwargs = {"Bucket": bucket, "Key": key, "Body": body}
        if self.make_public:
            kwargs["ACL"] = PUBLIC_READ_ACL
        logger.debug("PUT s3://%s/%s (%dB, acl=%s)", bucket, key, len(body), kwargs.get("ACL", "default"))
        try:
            self._s3.put_object(**kwargs)
        except (ClientError, BotoCoreError) as e:
            raise RemoteFailure(f"upload of {key} to {bucket} failed: {e}") from e

    def list_objects(self, bucket: str, max_items: int, continuation_token: Optional[str] = None) -> ListPage:
        kwargs = {"Bucket": bucket, "MaxKeys": max_items}
        if continuation_token:
            kwargs["ContinuationToken"] = continuation_token
        logger.debug("LIST s3://%s max_keys=%d token=%s", bucket, max_items, continuation_token)
        try:
            resp = self._s3.list_objects_v2(**kwargs)
        except (ClientError, BotoCoreError) as e:
            raise RemoteFailure(f"listing of {bucket} failed: {e}") from e

        return _to_page(resp)

    def iter_pages(self, bucket: str, max_items: int) -> Iterator[ListPage]:
        """Yield every page of the bucket listing, `max_items` keys at a time."""
        paginator = self._s3.get_paginator("list_objects_v2")
        try:
            for page in paginator.paginate(Bucket=bucket, PaginationConfig={"PageSize": max_items}):
                yield _to_page(page)
        except (ClientError, BotoCoreError) as e:
            raise RemoteFailure(f"listing of {bucket} failed: {e}") from e

    def list_all_objects(self, bucket: str, max_items: int) -> Iterator[str]:
        """Yield every key in the bucket, following continuation tokens to the end."""
        for page in self.iter_pages(bucket, max_items):
            yield from page.objects
