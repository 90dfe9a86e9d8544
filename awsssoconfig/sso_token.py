"""
SSO access token lookup and the interactive device-authorization flow.
"""

import datetime
import json
import os
import webbrowser

from botocore.exceptions import BotoCoreError, ClientError
from botocore.utils import parse_timestamp

from .core import create_sso_session, get_sso_cache_dir
from .log import default_logger

CLIENT_NAME = "aws-sso-config"
DEVICE_CODE_GRANT = "urn:ietf:params:oauth:grant-type:device_code"


def _utcnow():
    return datetime.datetime.now(datetime.timezone.utc)


def read_cache_entry(cache_file):
    """
    Read an SSO cache file.

    Args:
        cache_file: Path to a JSON file in the SSO cache directory

    Returns:
        tuple: (access_token, expires_at) or None if the file is not a usable
        token entry. The cache directory also holds client registrations and
        other JSON, so anything unexpected is treated as "not a token".
    """
    try:
        with open(cache_file, "r") as f:
            data = json.load(f)
    except (OSError, ValueError):
        return None

    if not isinstance(data, dict):
        return None

    access_token = data.get("accessToken")
    expires_at = data.get("expiresAt")
    if not access_token or not isinstance(access_token, str) or not expires_at:
        return None

    try:
        expires_at = parse_timestamp(expires_at)
    except (ValueError, TypeError, OverflowError, RuntimeError):
        return None

    if expires_at.tzinfo is None:
        expires_at = expires_at.replace(tzinfo=datetime.timezone.utc)
    return access_token, expires_at


def get_cached_token(cache_dir=None, now=None, logger=None):
    """
    Return the first unexpired access token in the SSO cache.

    Args:
        cache_dir: Cache directory (defaults to ~/.aws/sso/cache)
        now: Current time as an aware datetime (defaults to UTC now)
        logger: Logger for debug messages

    Returns:
        str or None
    """
    logger = default_logger(logger)
    cache_dir = cache_dir or get_sso_cache_dir()
    now = now or _utcnow()

    try:
        names = os.listdir(cache_dir)
    except OSError:
        logger.debug(f"SSO cache directory {cache_dir} is not readable")
        return None

    for name in names:
        if not name.endswith(".json"):
            continue
        entry = read_cache_entry(os.path.join(cache_dir, name))
        if entry is None:
            continue
        access_token, expires_at = entry
        if expires_at <= now:
            logger.debug(f"Skipping expired SSO token in {name}")
            continue
        logger.debug(f"Using cached SSO token from {name}")
        return access_token

    return None


def generate_token(
    sso_start_url,
    sso_region,
    session=None,
    logger=None,
    prompt=input,
    open_browser=webbrowser.open,
):
    """
    Run the device-authorization flow to obtain a new access token.

    Registers a public client, starts device authorization, opens the
    verification URL in a browser and waits for the user to press ENTER
    before exchanging the device code for a token. Failed remote calls are
    logged; the flow stops at the first step whose input is missing.

    Args:
        sso_start_url: SSO start URL
        sso_region: Region of the SSO instance
        session: boto3 session (defaults to an unauthenticated session)
        logger: Logger for progress messages
        prompt: Function used to wait for the user
        open_browser: Function used to open the verification URL

    Returns:
        str or None: The access token, or None if the flow failed
    """
    logger = default_logger(logger)
    session = session or create_sso_session(sso_region)
    oidc_client = session.client("sso-oidc", region_name=sso_region)

    try:
        registration = oidc_client.register_client(
            clientName=CLIENT_NAME,
            clientType="public",
            scopes=["sso-portal:*"],
        )
    except (ClientError, BotoCoreError) as e:
        logger.error(f"Failed to register SSO client: {e}")
        return None

    try:
        device_auth = oidc_client.start_device_authorization(
            clientId=registration["clientId"],
            clientSecret=registration["clientSecret"],
            startUrl=sso_start_url,
        )
    except (ClientError, BotoCoreError) as e:
        logger.error(f"Failed to start device authorization: {e}")
        return None

    url = device_auth.get("verificationUriComplete") or device_auth.get("verificationUri", "")
    print(f"If browser is not opened automatically, please open link:\n{url}")
    try:
        if not open_browser(url):
            logger.warning("Could not open a browser automatically")
    except webbrowser.Error as e:
        logger.warning(f"Could not open a browser automatically: {e}")

    try:
        prompt("Press ENTER key once login is done")
    except EOFError:
        logger.error("Standard input closed before login was confirmed")
        return None

    try:
        token = oidc_client.create_token(
            clientId=registration["clientId"],
            clientSecret=registration["clientSecret"],
            deviceCode=device_auth["deviceCode"],
            grantType=DEVICE_CODE_GRANT,
        )
    except (ClientError, BotoCoreError) as e:
        logger.error(f"Failed to create SSO token: {e}")
        return None

    return token.get("accessToken")


def get_token(sso_start_url, sso_region, cache_dir=None, session=None, logger=None, **flow_kwargs):
    """
    Return a cached SSO access token, or run the device flow for a new one.

    Returns:
        str or None
    """
    logger = default_logger(logger)
    token = get_cached_token(cache_dir=cache_dir, logger=logger)
    if token is not None:
        return token

    logger.info("No valid SSO token in cache, starting device authorization")
    return generate_token(sso_start_url, sso_region, session=session, logger=logger, **flow_kwargs)
