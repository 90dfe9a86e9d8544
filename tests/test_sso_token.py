"""Tests for aws-sso-config SSO token handling."""

import datetime
import json
import os
import shutil
import tempfile
import unittest
import webbrowser
from unittest.mock import MagicMock, patch

from botocore.exceptions import ClientError

from awsssoconfig.sso_token import (
    DEVICE_CODE_GRANT,
    generate_token,
    get_cached_token,
    get_token,
    read_cache_entry,
)

START_URL = "https://example.awsapps.com/start"


class CacheTestCase(unittest.TestCase):
    """Base class with a temporary SSO cache directory."""

    def setUp(self):
        self.cache_dir = tempfile.mkdtemp()

    def tearDown(self):
        shutil.rmtree(self.cache_dir, ignore_errors=True)

    def write_json(self, name, data):
        path = os.path.join(self.cache_dir, name)
        with open(path, "w") as f:
            json.dump(data, f)
        return path

    def write_text(self, name, text):
        path = os.path.join(self.cache_dir, name)
        with open(path, "w") as f:
            f.write(text)
        return path


class TestReadCacheEntry(CacheTestCase):
    """Test parsing of individual cache files."""

    def test_valid_entry(self):
        path = self.write_json(
            "a.json", {"accessToken": "tok", "expiresAt": "2030-01-01T00:00:00Z"}
        )
        token, expires_at = read_cache_entry(path)
        self.assertEqual(token, "tok")
        self.assertEqual(
            expires_at, datetime.datetime(2030, 1, 1, tzinfo=datetime.timezone.utc)
        )

    def test_naive_timestamp_is_utc(self):
        path = self.write_json("a.json", {"accessToken": "tok", "expiresAt": "2030-01-01T00:00:00"})
        _, expires_at = read_cache_entry(path)
        self.assertEqual(expires_at.utcoffset(), datetime.timedelta(0))

    def test_unrelated_json_is_skipped(self):
        path = self.write_json("client.json", {"clientId": "abc", "clientSecret": "def"})
        self.assertIsNone(read_cache_entry(path))

    def test_empty_token_is_skipped(self):
        path = self.write_json("a.json", {"accessToken": "", "expiresAt": "2030-01-01T00:00:00Z"})
        self.assertIsNone(read_cache_entry(path))

    def test_missing_expiry_is_skipped(self):
        path = self.write_json("a.json", {"accessToken": "tok"})
        self.assertIsNone(read_cache_entry(path))

    def test_invalid_json_is_skipped(self):
        path = self.write_text("broken.json", "{not json")
        self.assertIsNone(read_cache_entry(path))

    def test_non_object_json_is_skipped(self):
        path = self.write_json("list.json", ["accessToken"])
        self.assertIsNone(read_cache_entry(path))


class TestGetCachedToken(CacheTestCase):
    """Test selection of a cached token."""

    NOW = datetime.datetime(2025, 6, 1, tzinfo=datetime.timezone.utc)

    def test_returns_unexpired_token(self):
        self.write_json("expired.json", {"accessToken": "old", "expiresAt": "2025-01-01T00:00:00Z"})
        self.write_json("valid.json", {"accessToken": "new", "expiresAt": "2025-12-01T00:00:00Z"})
        self.write_json("client.json", {"clientId": "abc"})
        self.write_text("notes.txt", "accessToken")

        self.assertEqual(get_cached_token(cache_dir=self.cache_dir, now=self.NOW), "new")

    def test_only_expired_tokens(self):
        self.write_json("expired.json", {"accessToken": "old", "expiresAt": "2025-01-01T00:00:00Z"})
        self.assertIsNone(get_cached_token(cache_dir=self.cache_dir, now=self.NOW))

    def test_expiry_equal_to_now_is_expired(self):
        self.write_json("edge.json", {"accessToken": "edge", "expiresAt": "2025-06-01T00:00:00Z"})
        self.assertIsNone(get_cached_token(cache_dir=self.cache_dir, now=self.NOW))

    def test_empty_directory(self):
        self.assertIsNone(get_cached_token(cache_dir=self.cache_dir, now=self.NOW))

    def test_missing_directory(self):
        missing = os.path.join(self.cache_dir, "missing")
        self.assertIsNone(get_cached_token(cache_dir=missing, now=self.NOW))


class TestGenerateToken(unittest.TestCase):
    """Test the device-authorization flow."""

    def setUp(self):
        self.oidc = MagicMock()
        self.oidc.register_client.return_value = {"clientId": "cid", "clientSecret": "secret"}
        self.oidc.start_device_authorization.return_value = {
            "deviceCode": "device",
            "userCode": "ABCD-EFGH",
            "verificationUri": "https://device.sso.us-east-1.amazonaws.com/",
            "verificationUriComplete": "https://device.sso.us-east-1.amazonaws.com/?user_code=ABCD-EFGH",
        }
        self.oidc.create_token.return_value = {"accessToken": "fresh"}
        self.session = MagicMock()
        self.session.client.return_value = self.oidc
        self.prompt = MagicMock(return_value="")
        self.open_browser = MagicMock(return_value=True)

    def run_flow(self):
        with patch("builtins.print"):
            return generate_token(
                START_URL,
                "us-east-1",
                session=self.session,
                prompt=self.prompt,
                open_browser=self.open_browser,
            )

    def test_successful_flow(self):
        self.assertEqual(self.run_flow(), "fresh")

        self.session.client.assert_called_once_with("sso-oidc", region_name="us-east-1")
        self.oidc.start_device_authorization.assert_called_once_with(
            clientId="cid", clientSecret="secret", startUrl=START_URL
        )
        self.open_browser.assert_called_once_with(
            "https://device.sso.us-east-1.amazonaws.com/?user_code=ABCD-EFGH"
        )
        self.prompt.assert_called_once()
        self.oidc.create_token.assert_called_once_with(
            clientId="cid",
            clientSecret="secret",
            deviceCode="device",
            grantType=DEVICE_CODE_GRANT,
        )

    def test_browser_failure_is_not_fatal(self):
        self.open_browser.side_effect = webbrowser.Error("no browser")
        self.assertEqual(self.run_flow(), "fresh")
        self.prompt.assert_called_once()

    def test_closed_stdin_ends_flow(self):
        self.prompt.side_effect = EOFError

        self.assertIsNone(self.run_flow())
        self.oidc.create_token.assert_not_called()

    def test_register_failure(self):
        self.oidc.register_client.side_effect = ClientError(
            {"Error": {"Code": "InternalServerException", "Message": "boom"}}, "RegisterClient"
        )

        self.assertIsNone(self.run_flow())
        self.oidc.start_device_authorization.assert_not_called()
        self.prompt.assert_not_called()

    def test_create_token_failure(self):
        self.oidc.create_token.side_effect = ClientError(
            {"Error": {"Code": "AuthorizationPendingException", "Message": "pending"}},
            "CreateToken",
        )
        self.assertIsNone(self.run_flow())


class TestGetToken(CacheTestCase):
    """Test cache-or-login selection."""

    @patch("awsssoconfig.sso_token.generate_token")
    def test_uses_cache_when_valid(self, mock_generate):
        self.write_json("valid.json", {"accessToken": "cached", "expiresAt": "2999-01-01T00:00:00Z"})

        token = get_token(START_URL, "us-east-1", cache_dir=self.cache_dir)

        self.assertEqual(token, "cached")
        mock_generate.assert_not_called()

    @patch("awsssoconfig.sso_token.generate_token", return_value="fresh")
    def test_empty_cache_runs_device_flow(self, mock_generate):
        session = MagicMock()

        token = get_token(START_URL, "us-east-1", cache_dir=self.cache_dir, session=session)

        self.assertEqual(token, "fresh")
        mock_generate.assert_called_once()
        self.assertEqual(mock_generate.call_args[0], (START_URL, "us-east-1"))
        self.assertIs(mock_generate.call_args[1]["session"], session)


if __name__ == "__main__":
    unittest.main()
