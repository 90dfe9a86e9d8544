"""
Reconcile ~/.aws/config against the accounts visible through AWS SSO.

Every account accepted by the inclusion filter gets a "profile <name>"
section whose SSO keys are rewritten on each run, so running twice against
the same account list leaves the file unchanged. Sections that do not belong
to an SSO account are left alone.
"""

import os
import shutil
import subprocess
from dataclasses import dataclass

from botocore.exceptions import BotoCoreError, ClientError

from .core import profile_section_name, read_aws_config, write_aws_config
from .errors import PersistFailure
from .log import default_logger
from .settings import include_all, verbatim_namer

NEW_FILE_SUFFIX = ".new"
BACKUP_FILE_SUFFIX = ".bak"


@dataclass(frozen=True)
class Account:
    """An account returned by the SSO account listing."""

    account_id: str
    account_name: str


def iter_accounts(sso_client, access_token, page_retries=2, logger=None):
    """
    Yield every account visible to the access token, page by page.

    A page that fails to load is logged and requested again with the same
    page token, up to page_retries times. After that the listing ends early,
    because there is no token for the page that follows.

    Args:
        sso_client: boto3 "sso" client
        access_token: SSO access token
        page_retries: Extra attempts for a failing page
        logger: Logger for errors

    Yields:
        Account
    """
    logger = default_logger(logger)
    next_token = None
    failures = 0

    while True:
        kwargs = {"accessToken": access_token}
        if next_token:
            kwargs["nextToken"] = next_token

        try:
            page = sso_client.list_accounts(**kwargs)
        except (ClientError, BotoCoreError) as e:
            failures += 1
            logger.error(f"Failed to fetch account page: {e}")
            if failures > page_retries:
                logger.error(f"Giving up on account listing after {failures} failed attempts")
                return
            continue

        failures = 0
        for item in page.get("accountList", []):
            yield Account(account_id=item["accountId"], account_name=item.get("accountName", ""))

        next_token = page.get("nextToken")
        if not next_token:
            return


def profile_values(account, sso_role, sso_region, sso_start_url, default_region):
    """The five keys written to every SSO profile section, in file order."""
    return {
        "sso_account_id": account.account_id,
        "sso_role_name": sso_role,
        "sso_region": sso_region,
        "sso_start_url": sso_start_url,
        "region": default_region,
    }


def merge_accounts(
    config,
    accounts,
    sso_role,
    sso_region,
    sso_start_url,
    default_region,
    include=include_all,
    namer=verbatim_namer,
    logger=None,
):
    """
    Add or update a profile section for each included account.

    Args:
        config: Parsed AWS config (modified in place)
        accounts: Iterable of Account
        include: Predicate on the account name
        namer: Transform from account name to profile name

    Returns:
        list: Profile names that were newly added
    """
    logger = default_logger(logger)
    added = []

    for account in accounts:
        if not include(account.account_name):
            logger.debug(f"Skipping account {account.account_name} ({account.account_id})")
            continue

        profile_name = namer(account.account_name)
        section = profile_section_name(profile_name)

        if not config.has_section(section):
            logger.info(f"Adding profile {profile_name}")
            config.add_section(section)
            added.append(profile_name)

        values = profile_values(account, sso_role, sso_region, sso_start_url, default_region)
        for key, value in values.items():
            config.set(section, key, value)

    return added


def prune_deleted_accounts(config, deleted_accounts, logger=None):
    """
    Remove every section whose sso_account_id is a deleted account.

    Returns:
        list: Names of removed sections
    """
    logger = default_logger(logger)
    deleted = set(deleted_accounts)
    removed = []

    for section in config.sections():
        account_id = config.get(section, "sso_account_id", fallback=None)
        if account_id is None or account_id not in deleted:
            continue
        logger.info(f"Removing [{section}] for deleted account {account_id}")
        config.remove_section(section)
        removed.append(section)

    return removed


def show_file_diff(file1, file2, runner=subprocess.run, logger=None):
    """
    Print a diff of two files using the external diff utility.

    Never raises: a missing file or missing diff binary is reported and the
    diff is skipped.
    """
    logger = default_logger(logger)

    # Check the paths first so diff is never handed something unexpected
    for path in (file1, file2):
        if not os.path.exists(path):
            print(f"File {path} does not exist")
            return

    try:
        runner(["diff", file1, file2], check=False)
    except OSError as e:
        logger.warning(f"Could not run diff: {e}")


def commit_config_file(config_file, new_file, backup=False, logger=None):
    """
    Replace config_file with new_file.

    Raises:
        PersistFailure: If the backup copy or the rename fails. new_file is
            left in place for manual recovery.
    """
    logger = default_logger(logger)

    if os.path.exists(config_file):
        try:
            shutil.copymode(config_file, new_file)
        except OSError as e:
            logger.debug(f"Could not copy permissions from {config_file}: {e}")

        if backup:
            backup_file = config_file + BACKUP_FILE_SUFFIX
            try:
                shutil.copy2(config_file, backup_file)
            except OSError as e:
                raise PersistFailure(
                    f"could not back up {config_file} to {backup_file}: {e}", pending_file=new_file
                )
            logger.debug(f"Backed up {config_file} to {backup_file}")

    try:
        os.replace(new_file, config_file)
    except OSError as e:
        raise PersistFailure(
            f"could not replace {config_file} with {new_file}: {e}", pending_file=new_file
        )


def generate_config_file(
    sso_client,
    access_token,
    settings,
    config_file=None,
    diff=False,
    cleanup=False,
    logger=None,
    runner=subprocess.run,
):
    """
    Bring the AWS config file in line with the accounts visible through SSO.

    Args:
        sso_client: boto3 "sso" client
        access_token: SSO access token
        settings: Settings providing SSO defaults and account policy
        config_file: AWS config file (defaults to settings.config_file)
        diff: Show a diff between the old and new file before committing
        cleanup: Remove profiles for accounts in settings.deleted_accounts
        logger: Logger for progress messages
        runner: subprocess.run compatible function used for diff

    Returns:
        str: The path that was written (config_file, or the .new file when
        settings.dry_run is set)

    Raises:
        ConfigFileCorrupt: If the existing file cannot be parsed
        PersistFailure: If the new file cannot be written or committed
    """
    logger = default_logger(logger)
    config_file = str(config_file or settings.config_file)
    new_file = config_file + NEW_FILE_SUFFIX

    config = read_aws_config(config_file)

    logger.info("Fetching list of all accounts for user")
    accounts = iter_accounts(
        sso_client, access_token, page_retries=settings.page_retries, logger=logger
    )
    merge_accounts(
        config,
        accounts,
        sso_role=settings.sso_role,
        sso_region=settings.sso_region,
        sso_start_url=settings.sso_start_url,
        default_region=settings.default_region,
        include=settings.account_filter(),
        namer=settings.profile_namer(),
        logger=logger,
    )

    if cleanup:
        prune_deleted_accounts(config, settings.deleted_accounts, logger=logger)

    try:
        write_aws_config(new_file, config)
    except OSError as e:
        raise PersistFailure(f"could not write {new_file}: {e}", pending_file=new_file)

    if diff:
        show_file_diff(config_file, new_file, runner=runner, logger=logger)

    if settings.dry_run:
        logger.info(f"Dry run: changes written to {new_file}, {config_file} left untouched")
        return new_file

    commit_config_file(config_file, new_file, backup=settings.backup_configs, logger=logger)
    return config_file
