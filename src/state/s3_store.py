from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional
from uuid import uuid4

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from cryptography.fernet import Fernet, InvalidToken

from .errors import ConcurrentModificationError, CorruptStateError, PersistError, RetrievalError
from .models import RotationState, dump_state, load_state
from .ssm_store import client_config
from .store import LoadResult


logger = logging.getLogger(__name__)

# Environment variable names, resolved by deploy.handler.build_store
ENV_BUCKET = "STATE_BUCKET"
ENV_KEY = "STATE_KEY"
ENV_FERNET_KEY = "STATE_FERNET_KEY"

DEFAULT_KEY = "blue-green-state.json"


def _to_fernet(key: str | bytes) -> Fernet:
    """Construct a Fernet instance from a user-provided key.

    The key must be a URL-safe base64-encoded 32-byte key (str or bytes),
    as returned by `cryptography.fernet.Fernet.generate_key()`.
    """
    if isinstance(key, str):
        key_bytes = key.encode("utf-8")
    else:
        key_bytes = key
    return Fernet(key_bytes)


def _error_code(e: ClientError) -> Optional[str]:
    return e.response.get("Error", {}).get("Code")


@dataclass
class S3ObjectRef:
    bucket: str
    key: str

    def __str__(self) -> str:
        return f"s3://{self.bucket}/{self.key}"


class S3StateStore:
    """
    S3-backed persistence for `RotationState`, encrypted at rest using Fernet.

    Usage
    - `get()` returns a LoadResult whose token is the object ETag. A missing
      object is ABSENT.
    - `put(state, if_match=etag)` uses a copy-based conditional update so the
      write succeeds only if the current object ETag still matches.
    - `put(state, create_only=True)` uses `IfNoneMatch="*"`.
    """

    def __init__(
        self,
        *,
        s3: Optional[object] = None,
        bucket: str,
        key: str = DEFAULT_KEY,
        fernet_key: str | bytes,
        region_name: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> None:
        self._s3 = s3 or boto3.client("s3", region_name=region_name, config=client_config(timeout))
        self._obj = S3ObjectRef(bucket=bucket, key=key)
        self._fernet = _to_fernet(fernet_key)

    # -------- Core operations --------
    def get(self) -> LoadResult:
        """Read and decrypt the rotation state.

        Raises:
        - RetrievalError for S3 access or transport failures.
        - CorruptStateError if decryption fails or the content is not a valid record.
        """
        try:
            resp = self._s3.get_object(Bucket=self._obj.bucket, Key=self._obj.key)
            body = resp["Body"].read()
        except ClientError as e:
            if _error_code(e) in ("NoSuchKey", "404"):
                return LoadResult.absent()
            raise RetrievalError(f"Failed to read {self._obj}: {_error_code(e)}") from e
        except BotoCoreError as e:
            raise RetrievalError(f"Failed to reach S3 for {self._obj}") from e

        etag = resp.get("ETag")  # usually quoted string
        try:
            decrypted = self._fernet.decrypt(body)
        except InvalidToken as ex:
            raise CorruptStateError(f"Failed to decrypt {self._obj}: invalid Fernet token") from ex

        return LoadResult.found(load_state(decrypted), token=etag)

    def put(
        self,
        state: RotationState,
        *,
        if_match: Optional[str] = None,
        create_only: bool = False,
    ) -> Optional[str]:
        """Encrypt and write the rotation state; returns the new ETag."""
        ciphertext = self._fernet.encrypt(dump_state(state).encode("utf-8"))

        if if_match is None:
            extra = {"IfNoneMatch": "*"} if create_only else {}
            try:
                resp = self._s3.put_object(
                    Bucket=self._obj.bucket,
                    Key=self._obj.key,
                    Body=ciphertext,
                    ContentType="application/octet-stream",
                    **extra,
                )
            except ClientError as e:
                if create_only and _error_code(e) in ("PreconditionFailed", "412"):
                    raise ConcurrentModificationError(f"{self._obj} was created by another run") from e
                raise PersistError(f"Failed to write {self._obj}: {_error_code(e)}") from e
            except BotoCoreError as e:
                raise PersistError(f"Failed to reach S3 for {self._obj}") from e
            return str(resp.get("ETag"))

        # S3 PutObject on an existing key is unconditional here, so upload to a
        # temporary key, then COPY over the destination with an If-Match
        # precondition on the destination's current ETag.
        temp_key = f"{self._obj.key}.tmp-{uuid4().hex}"
        try:
            self._s3.put_object(
                Bucket=self._obj.bucket,
                Key=temp_key,
                Body=ciphertext,
                ContentType="application/octet-stream",
            )
            resp = self._s3.copy_object(
                Bucket=self._obj.bucket,
                Key=self._obj.key,
                CopySource={"Bucket": self._obj.bucket, "Key": temp_key},
                IfMatch=if_match,
                MetadataDirective="COPY",
            )
        except ClientError as e:
            if _error_code(e) in ("PreconditionFailed", "412"):
                raise ConcurrentModificationError(
                    f"ETag mismatch for {self._obj} (expected {if_match})"
                ) from e
            raise PersistError(f"Failed to write {self._obj}: {_error_code(e)}") from e
        except BotoCoreError as e:
            raise PersistError(f"Failed to reach S3 for {self._obj}") from e
        finally:
            self._delete_temp(temp_key)

        return str(resp.get("ETag"))

    def _delete_temp(self, temp_key: str) -> None:
        try:
            self._s3.delete_object(Bucket=self._obj.bucket, Key=temp_key)
        except (ClientError, BotoCoreError):
            logger.warning("Could not remove temporary object s3://%s/%s", self._obj.bucket, temp_key)
