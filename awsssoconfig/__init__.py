"""
aws-sso-config: keep ~/.aws/config in sync with AWS SSO and pick the right
profile for a git repository.

A Python CLI utility that lists every account reachable through AWS IAM
Identity Center, writes a profile for each one into the AWS config file, and
maps the git repository you are working in to its validated AWS profile.

Key features:
- Generate and update SSO profiles for all accessible accounts
- Remove profiles belonging to deleted accounts
- Reuse cached SSO tokens, or log in with the device-authorization flow
- Resolve and validate a repository's profile against terragrunt.hcl
"""

__version__ = "0.1.0"
__license__ = "MIT"

from .errors import (
    AccountMismatch,
    AwsSsoConfigError,
    ConfigFileCorrupt,
    NotInRepository,
    ParseError,
    PersistFailure,
    ProfileNotFound,
    SettingsError,
    TokenUnavailable,
)
from .profile import find_repo_root, profile_from_repo_name, resolve_profile, validate_profile
from .reconcile import (
    Account,
    generate_config_file,
    iter_accounts,
    merge_accounts,
    prune_deleted_accounts,
)
from .settings import Settings, load_settings
from .sso_token import generate_token, get_cached_token, get_token

__all__ = [
    # Profile resolution
    "resolve_profile",
    "find_repo_root",
    "profile_from_repo_name",
    "validate_profile",
    # Config reconciliation
    "Account",
    "generate_config_file",
    "iter_accounts",
    "merge_accounts",
    "prune_deleted_accounts",
    # SSO tokens
    "get_token",
    "get_cached_token",
    "generate_token",
    # Settings
    "Settings",
    "load_settings",
    # Errors
    "AwsSsoConfigError",
    "NotInRepository",
    "ProfileNotFound",
    "ParseError",
    "AccountMismatch",
    "ConfigFileCorrupt",
    "PersistFailure",
    "SettingsError",
    "TokenUnavailable",
]
