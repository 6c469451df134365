from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Dict, List, Optional
from urllib.parse import urlparse

import boto3
import requests
from botocore.exceptions import BotoCoreError, ClientError

from .constants import DEFAULT_CHUNK_SIZE, ETAG_FILENAME
from .errors import RemoteError
from .job import S3Config


DOWNLOAD_TIMEOUT = 30


@dataclass
class DownloadInfo:
    file_path: str
    etag: str


def _s3_client(config: S3Config):
    kwargs = {"region_name": config.region}
    if config.endpoint_url:
        kwargs["endpoint_url"] = config.endpoint_url
    if config.access_key_id:
        kwargs["aws_access_key_id"] = config.access_key_id
        kwargs["aws_secret_access_key"] = config.secret_access_key
    return boto3.client("s3", **kwargs)


def upload_artifacts(config: S3Config, paths: List[str], *, client=None) -> List[str]:
    """Upload each file to ``bucket/prefix + basename``; returns the object keys."""
    client = client or _s3_client(config)
    keys = []
    for path in paths:
        key = config.prefix + os.path.basename(path)
        try:
            client.upload_file(path, config.bucket, key)
        except (BotoCoreError, ClientError, OSError) as exc:
            raise RemoteError(f"Upload to s3://{config.bucket}/{key} failed ({exc})", path) from exc
        keys.append(key)
    return keys


def _etag_path(final_dir: str) -> str:
    return os.path.join(final_dir, ETAG_FILENAME)


def load_etag(final_dir: str) -> str:
    try:
        with open(_etag_path(final_dir), "r", encoding="utf-8") as fh:
            return fh.read().strip()
    except FileNotFoundError:
        return ""
    except OSError as exc:
        raise RemoteError(f"Unable to read ETag file ({exc.strerror})", _etag_path(final_dir)) from exc


def save_etag(final_dir: str, etag: str) -> None:
    if not etag:
        return
    os.makedirs(final_dir, exist_ok=True)
    with open(_etag_path(final_dir), "w", encoding="utf-8") as fh:
        fh.write(etag)


def download_artifact(url: str, final_dir: str, *, session: Optional[requests.Session] = None) -> Optional[DownloadInfo]:
    """Fetch ``url`` into a temporary file unless the cached ETag still matches.

    Returns None when the server answers 304 Not Modified. The ETag is not
    stored here; call :func:`save_etag` once the artifact has been unpacked.
    """
    headers = {}
    etag = load_etag(final_dir)
    if etag:
        headers["If-None-Match"] = etag
    if session is None:
        with requests.Session() as own:
            return _fetch(own, url, headers)
    return _fetch(session, url, headers)


def _fetch(session: requests.Session, url: str, headers: Dict[str, str]) -> Optional[DownloadInfo]:
    try:
        resp = session.get(url, headers=headers, stream=True, timeout=DOWNLOAD_TIMEOUT)
    except requests.RequestException as exc:
        raise RemoteError(f"Unable to communicate with server ({exc})", url) from exc

    with resp:
        if resp.status_code == 304:
            return None
        try:
            resp.raise_for_status()
        except requests.HTTPError as exc:
            raise RemoteError(f"Download failed ({exc})", url) from exc

        suffix = "".join(PurePosixPath(urlparse(url).path).suffixes)
        fd, tmp_path = tempfile.mkstemp(prefix="weave", suffix=suffix)
        written = 0
        try:
            with os.fdopen(fd, "wb") as out:
                for chunk in resp.iter_content(chunk_size=DEFAULT_CHUNK_SIZE):
                    out.write(chunk)
                    written += len(chunk)
        except (requests.RequestException, OSError) as exc:
            os.remove(tmp_path)
            raise RemoteError(f"Unable to download file ({exc})", url) from exc

    if written == 0:
        os.remove(tmp_path)
        raise RemoteError("Nothing was copied", url)
    return DownloadInfo(file_path=tmp_path, etag=resp.headers.get("ETag", ""))
