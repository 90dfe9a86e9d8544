"""
Resolve which AWS profile to use for the current git repository.

The profile name is derived from the repository directory name and is then
checked twice: the profile must exist in ~/.aws/config, and its
sso_account_id must match the account_id declared in the repository's
terragrunt.hcl. A mismatch is never corrected automatically.
"""

import configparser
import os

from .core import AWS_PROFILE_ENV, get_aws_config_path, new_config_parser, profile_section_name
from .errors import AccountMismatch, NotInRepository, ParseError, ProfileNotFound
from .log import default_logger

REPO_MARKER = ".git"
TERRAGRUNT_FILE = "terragrunt.hcl"


def find_repo_root(start_dir):
    """
    Walk up from start_dir to the nearest directory containing .git.

    Args:
        start_dir: Directory to start from

    Returns:
        str: Absolute path of the repository root

    Raises:
        NotInRepository: If the filesystem root is reached without a match
    """
    current = os.path.abspath(start_dir)
    while True:
        if os.path.exists(os.path.join(current, REPO_MARKER)):
            return current
        parent = os.path.dirname(current)
        if parent == current:
            raise NotInRepository(f"not in a git repository: {start_dir}")
        current = parent


def profile_from_repo_name(repo_name, repo_profiles=None):
    """
    Map a repository name to its profile name.

    A few old accounts have repositories whose names do not match the
    account name; repo_profiles lists those. Any other name is returned
    unchanged.
    """
    if repo_profiles and repo_name in repo_profiles:
        return repo_profiles[repo_name]
    return repo_name


def read_terragrunt_account_id(terragrunt_file):
    """
    Scan terragrunt.hcl for the first 'account_id = "<id>"' line.

    This is a line scan, not an HCL parse. Lines with fewer than three
    whitespace-separated fields are ignored.

    Returns:
        str: The declared account id, or "" if none is declared

    Raises:
        OSError: If the file cannot be opened
    """
    with open(terragrunt_file, "r") as f:
        for line in f:
            fields = line.split()
            if len(fields) < 3:
                continue
            if fields[0] != "account_id":
                continue
            return fields[2].strip('"')
    return ""


def validate_account_id(account_id, repo_root):
    """
    Check that terragrunt.hcl at repo_root declares account_id.

    Raises:
        AccountMismatch: If the file is missing, declares no account id, or
            declares a different one
    """
    terragrunt_file = os.path.join(repo_root, TERRAGRUNT_FILE)
    try:
        declared = read_terragrunt_account_id(terragrunt_file)
    except OSError:
        raise AccountMismatch(f"could not find {TERRAGRUNT_FILE} at root of git repo {repo_root}")

    if not declared:
        raise AccountMismatch(f"could not determine account id from {terragrunt_file}")
    if declared != account_id:
        raise AccountMismatch(
            f"account id {account_id} determined from profile did not match "
            f"entry {declared} in terragrunt file {terragrunt_file}"
        )


def read_profile_account_id(profile_name, config_file):
    """
    Read sso_account_id for a profile from the AWS config file.

    Raises:
        ParseError: If the file cannot be parsed or the key is missing
        ProfileNotFound: If the profile section does not exist
    """
    config = new_config_parser()
    try:
        with open(config_file, "r") as f:
            config.read_file(f, source=str(config_file))
    except (OSError, configparser.Error) as e:
        raise ParseError(f"error parsing aws config {config_file}: {e}")

    section = profile_section_name(profile_name)
    if not config.has_section(section):
        raise ProfileNotFound(f"could not find profile for {profile_name}")

    try:
        return config.get(section, "sso_account_id")
    except configparser.NoOptionError as e:
        raise ParseError(f"error parsing aws config {profile_name}: {e}")


def validate_profile(profile_name, repo_root, config_file=None, logger=None):
    """
    Validate a candidate profile against the AWS config and terragrunt.hcl.

    Returns:
        str: The profile's account id
    """
    logger = default_logger(logger)
    config_file = config_file or get_aws_config_path()

    account_id = read_profile_account_id(profile_name, config_file)
    validate_account_id(account_id, repo_root)

    logger.info(f"Using profile {profile_name} ({account_id})")
    return account_id


def resolve_profile(cwd=None, environ=None, repo_profiles=None, config_file=None, logger=None):
    """
    Determine the AWS profile for the repository containing cwd.

    Args:
        cwd: Working directory (defaults to os.getcwd())
        environ: Environment mapping (defaults to os.environ)
        repo_profiles: Repository name to profile name exceptions
        config_file: AWS config file (defaults to ~/.aws/config)
        logger: Logger for progress messages

    Returns:
        str: The validated profile name, or None if AWS_PROFILE is already
        set and resolution was skipped

    Raises:
        NotInRepository, ProfileNotFound, ParseError, AccountMismatch
    """
    logger = default_logger(logger)
    environ = os.environ if environ is None else environ

    if AWS_PROFILE_ENV in environ:
        logger.info(
            f"{AWS_PROFILE_ENV} is already set to {environ[AWS_PROFILE_ENV]} "
            f"(potentially by direnv?), skipping setup"
        )
        return None

    repo_root = find_repo_root(cwd or os.getcwd())
    profile_name = profile_from_repo_name(os.path.basename(repo_root), repo_profiles)
    logger.debug(f"Repository {repo_root} maps to profile {profile_name}")

    validate_profile(profile_name, repo_root, config_file=config_file, logger=logger)
    return profile_name
