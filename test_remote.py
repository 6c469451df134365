from __future__ import annotations

import os
import tempfile
import unittest
from pathlib import Path
from unittest import mock

import requests
from botocore.exceptions import ClientError

from weave.constants import ETAG_FILENAME
from weave.errors import ErrorKind, RemoteError
from weave.job import S3Config
from weave.remote import download_artifact, load_etag, save_etag, upload_artifacts


def _response(status: int, chunks=(), etag: str = ""):
    resp = mock.MagicMock()
    resp.status_code = status
    resp.headers = {"ETag": etag} if etag else {}
    resp.iter_content.return_value = iter(chunks)
    if status >= 400:
        resp.raise_for_status.side_effect = requests.HTTPError(f"{status} error")
    return resp


class DownloadTests(unittest.TestCase):
    def run_with_tmpdir(self, func):
        with tempfile.TemporaryDirectory() as tmp:
            func(Path(tmp))

    def test_download_without_cached_etag(self):
        def scenario(tmp: Path):
            session = mock.MagicMock()
            session.get.return_value = _response(200, [b"abc", b"def"], etag='"v1"')
            info = download_artifact("https://example.com/a/site-prod.tar.gz.enc?x=1", str(tmp), session=session)
            try:
                self.assertEqual(Path(info.file_path).read_bytes(), b"abcdef")
                self.assertTrue(info.file_path.endswith(".tar.gz.enc"))
                self.assertEqual(info.etag, '"v1"')
            finally:
                os.remove(info.file_path)
            _, kwargs = session.get.call_args
            self.assertEqual(kwargs["headers"], {})
            self.assertTrue(kwargs["stream"])
            # Downloading alone does not update the cache
            self.assertEqual(load_etag(str(tmp)), "")

        self.run_with_tmpdir(scenario)

    def test_not_modified_returns_none(self):
        def scenario(tmp: Path):
            save_etag(str(tmp), '"v1"')
            self.assertEqual((tmp / ETAG_FILENAME).read_text(), '"v1"')
            session = mock.MagicMock()
            session.get.return_value = _response(304)
            self.assertIsNone(download_artifact("https://example.com/a.tar.gz", str(tmp), session=session))
            _, kwargs = session.get.call_args
            self.assertEqual(kwargs["headers"], {"If-None-Match": '"v1"'})

        self.run_with_tmpdir(scenario)

    def test_empty_body_is_an_error(self):
        def scenario(tmp: Path):
            session = mock.MagicMock()
            session.get.return_value = _response(200, [])
            with self.assertRaises(RemoteError) as ctx:
                download_artifact("https://example.com/a.tar.gz", str(tmp), session=session)
            self.assertEqual(ctx.exception.kind, ErrorKind.REMOTE)

        self.run_with_tmpdir(scenario)

    def test_http_and_connection_errors(self):
        def scenario(tmp: Path):
            session = mock.MagicMock()
            session.get.return_value = _response(404)
            with self.assertRaises(RemoteError):
                download_artifact("https://example.com/a.tar.gz", str(tmp), session=session)
            session.get.side_effect = requests.ConnectionError("refused")
            with self.assertRaises(RemoteError):
                download_artifact("https://example.com/a.tar.gz", str(tmp), session=session)

        self.run_with_tmpdir(scenario)

    def test_own_session_is_closed(self):
        def scenario(tmp: Path):
            with mock.patch("weave.remote.requests.Session") as factory:
                session = factory.return_value
                session.__enter__.return_value = session
                session.get.return_value = _response(200, [b"abc"])
                info = download_artifact("https://example.com/a.tar", str(tmp))
            os.remove(info.file_path)
            session.get.assert_called_once()
            session.__exit__.assert_called_once()

        self.run_with_tmpdir(scenario)

    def test_save_etag_ignores_empty(self):
        def scenario(tmp: Path):
            save_etag(str(tmp), "")
            self.assertFalse((tmp / ETAG_FILENAME).exists())

        self.run_with_tmpdir(scenario)


class UploadTests(unittest.TestCase):
    def test_upload_keys_and_errors(self):
        client = mock.MagicMock()
        config = S3Config(bucket="b", prefix="rel/")
        keys = upload_artifacts(config, ["/w/1-2-base.tar.gz", "/w/1-2-prod.tar.gz"], client=client)
        self.assertEqual(keys, ["rel/1-2-base.tar.gz", "rel/1-2-prod.tar.gz"])
        client.upload_file.assert_any_call("/w/1-2-prod.tar.gz", "b", "rel/1-2-prod.tar.gz")

        client.upload_file.side_effect = ClientError({"Error": {"Code": "AccessDenied", "Message": "no"}}, "PutObject")
        with self.assertRaises(RemoteError):
            upload_artifacts(config, ["/w/x.tar.gz"], client=client)

    def test_client_options(self):
        config = S3Config(
            bucket="b",
            region="eu-west-1",
            endpoint_url="http://localhost:9000",
            access_key_id="id",
            secret_access_key="secret",
        )
        with mock.patch("weave.remote.boto3.client") as factory:
            upload_artifacts(config, [])
        factory.assert_called_once_with(
            "s3",
            region_name="eu-west-1",
            endpoint_url="http://localhost:9000",
            aws_access_key_id="id",
            aws_secret_access_key="secret",
        )


if __name__ == "__main__":
    unittest.main()
