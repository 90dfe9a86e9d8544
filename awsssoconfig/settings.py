"""
Application settings for aws-sso-config.

Settings are layered: built-in defaults, then a YAML settings file, then
AWS_SSO_CONFIG_* environment variables. Policy that tends to change between
organisations (which accounts to include, how profiles are named, which repo
names map to which profile) lives here rather than in the algorithms.
"""

import os
from pathlib import Path

import yaml

from .errors import SettingsError

ENV_PREFIX = "AWS_SSO_CONFIG_"
SETTINGS_FILE_NAME = "aws-sso-config.yaml"

DEFAULTS = {
    "sso_start_url": "https://your-sso-portal.awsapps.com/start",
    "sso_region": "us-east-1",
    "sso_role": "AdministratorAccess",
    "default_region": "us-east-1",
    "config_file": "~/.aws/config",
    "backup_configs": True,
    "dry_run": False,
    "account_prefixes": [],
    "strip_prefixes": False,
    "repo_profiles": {},
    "deleted_accounts": [],
    "wrapper_command": "aws2-wrap",
    "page_retries": 2,
}

DESCRIPTIONS = {
    "sso_start_url": "AWS SSO start URL",
    "sso_region": "AWS region of the SSO instance",
    "sso_role": "SSO role name written to every profile",
    "default_region": "Default region written to every profile",
    "config_file": "Path to the AWS config file",
    "backup_configs": "Copy the AWS config to <config_file>.bak before replacing it",
    "dry_run": "Write <config_file>.new but never replace the AWS config",
    "account_prefixes": "Only include accounts whose name starts with one of these (empty = all)",
    "strip_prefixes": "Strip the matched account prefix from the profile name",
    "repo_profiles": "Repository name to profile name exceptions",
    "deleted_accounts": "Account ids whose profiles are removed by --cleanup",
    "wrapper_command": "Executable used by 'run' to wrap commands with credentials",
    "page_retries": "Retries for a failed account listing page",
}

BOOL_KEYS = ("backup_configs", "dry_run", "strip_prefixes")
INT_KEYS = ("page_retries",)
LIST_KEYS = ("account_prefixes", "deleted_accounts")
MAPPING_KEYS = ("repo_profiles",)


def settings_search_paths():
    """Locations searched for a settings file when none is given explicitly."""
    home = Path.home()
    return [
        Path.cwd() / SETTINGS_FILE_NAME,
        home / SETTINGS_FILE_NAME,
        home / ".config" / "aws-sso-config" / SETTINGS_FILE_NAME,
        Path("/etc/aws-sso-config") / SETTINGS_FILE_NAME,
    ]


def default_settings_path():
    """Path that 'config set' writes to when no settings file exists yet."""
    return Path.home() / ".config" / "aws-sso-config" / SETTINGS_FILE_NAME


def find_settings_file(path=None):
    """
    Locate the settings file.

    Args:
        path: Explicit settings file path, or None to search defaults

    Returns:
        Path or None if no settings file exists

    Raises:
        SettingsError: If an explicit path does not exist
    """
    if path:
        explicit = Path(path).expanduser()
        if not explicit.is_file():
            raise SettingsError(f"settings file {explicit} does not exist")
        return explicit

    for candidate in settings_search_paths():
        if candidate.is_file():
            return candidate
    return None


def read_settings_file(path):
    """
    Read a YAML (or JSON) settings file into a dict.

    Raises:
        SettingsError: If the file cannot be read or is not a mapping
    """
    try:
        with open(path, "r") as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise SettingsError(f"error reading settings file {path}: {e}")

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise SettingsError(f"settings file {path} must contain a mapping")

    unknown = sorted(set(data) - set(DEFAULTS))
    if unknown:
        raise SettingsError(f"unknown settings in {path}: {', '.join(unknown)}")
    return data


def write_settings_file(path, data):
    """Write settings back as YAML, creating the parent directory."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        yaml.safe_dump(data, f, default_flow_style=False, sort_keys=True)


def parse_bool(value):
    """Parse a boolean from an environment or CLI string."""
    if isinstance(value, bool):
        return value
    lowered = str(value).strip().lower()
    if lowered in ("1", "true", "yes", "on"):
        return True
    if lowered in ("0", "false", "no", "off"):
        return False
    raise SettingsError(f"invalid boolean value: {value!r}")


def coerce_value(key, value):
    """
    Convert a raw string (from the environment or 'config set') to the type
    used by the given settings key.

    Values already parsed from the settings file must have the right type:
    string settings and list or mapping entries are never converted, so an
    unquoted account id cannot silently lose its leading zeros.
    """
    if key not in DEFAULTS:
        raise SettingsError(f"unknown setting: {key}")
    if key in BOOL_KEYS:
        return parse_bool(value)
    if key in INT_KEYS:
        try:
            return int(value)
        except (TypeError, ValueError):
            raise SettingsError(f"{key} must be an integer, got {value!r}")
    if key in LIST_KEYS:
        if isinstance(value, (list, tuple)):
            # YAML reads 012345670123 as an integer and drops the leading zero
            for item in value:
                if not isinstance(item, str):
                    raise SettingsError(
                        f"{key} entries must be quoted strings, got {item!r}"
                    )
            return list(value)
        return [item.strip() for item in str(value).split(",") if item.strip()]
    if key in MAPPING_KEYS:
        if isinstance(value, dict):
            for repo, profile in value.items():
                if not isinstance(repo, str) or not isinstance(profile, str):
                    raise SettingsError(
                        f"{key} entries must map strings to strings, got {repo!r}: {profile!r}"
                    )
            return dict(value)
        mapping = {}
        for pair in str(value).split(","):
            if not pair.strip():
                continue
            if "=" not in pair:
                raise SettingsError(f"{key} entries must look like repo=profile, got {pair!r}")
            repo, profile = pair.split("=", 1)
            mapping[repo.strip()] = profile.strip()
        return mapping
    if not isinstance(value, str):
        raise SettingsError(f"{key} must be a string, got {value!r}")
    return value


def prefix_filter(prefixes):
    """Inclusion predicate that accepts account names starting with any prefix."""
    prefixes = tuple(prefixes)

    def include(account_name):
        return account_name.startswith(prefixes)

    return include


def include_all(account_name):
    """Inclusion predicate that accepts every account."""
    return True


def strip_prefix_namer(prefixes):
    """Name transform that removes the first matching prefix from an account name."""
    prefixes = tuple(prefixes)

    def namer(account_name):
        for prefix in prefixes:
            if account_name.startswith(prefix):
                return account_name[len(prefix) :]
        return account_name

    return namer


def verbatim_namer(account_name):
    """Name transform that uses the account name as the profile name."""
    return account_name


class Settings:
    """Effective application settings."""

    def __init__(self, source=None, **values):
        merged = dict(DEFAULTS)
        merged.update(values)
        unknown = sorted(set(merged) - set(DEFAULTS))
        if unknown:
            raise SettingsError(f"unknown settings: {', '.join(unknown)}")

        self.source = source
        self.sso_start_url = coerce_value("sso_start_url", merged["sso_start_url"])
        self.sso_region = coerce_value("sso_region", merged["sso_region"])
        self.sso_role = coerce_value("sso_role", merged["sso_role"])
        self.default_region = coerce_value("default_region", merged["default_region"])
        config_file = merged["config_file"]
        if isinstance(config_file, os.PathLike):
            config_file = os.fspath(config_file)
        self.config_file = os.path.expanduser(coerce_value("config_file", config_file))
        self.backup_configs = parse_bool(merged["backup_configs"])
        self.dry_run = parse_bool(merged["dry_run"])
        self.account_prefixes = coerce_value("account_prefixes", merged["account_prefixes"] or [])
        self.strip_prefixes = parse_bool(merged["strip_prefixes"])
        self.repo_profiles = coerce_value("repo_profiles", merged["repo_profiles"] or {})
        self.deleted_accounts = coerce_value("deleted_accounts", merged["deleted_accounts"] or [])
        self.wrapper_command = coerce_value("wrapper_command", merged["wrapper_command"])
        self.page_retries = coerce_value("page_retries", merged["page_retries"])

    def as_dict(self):
        return {key: getattr(self, key) for key in DEFAULTS}

    def get(self, key):
        if key not in DEFAULTS:
            raise SettingsError(f"unknown setting: {key}")
        return getattr(self, key)

    def validate(self):
        """
        Check that required settings are present.

        Raises:
            SettingsError: On the first invalid setting
        """
        for key in ("sso_start_url", "sso_region", "sso_role", "default_region", "config_file"):
            if not getattr(self, key):
                raise SettingsError(f"{key} is required")
        if not self.wrapper_command:
            raise SettingsError("wrapper_command is required")
        if self.page_retries < 0:
            raise SettingsError("page_retries must not be negative")
        return self

    def account_filter(self):
        """Inclusion predicate for remote accounts."""
        if self.account_prefixes:
            return prefix_filter(self.account_prefixes)
        return include_all

    def profile_namer(self):
        """Transform from account name to profile name."""
        if self.strip_prefixes and self.account_prefixes:
            return strip_prefix_namer(self.account_prefixes)
        return verbatim_namer


def environment_overrides(environ=None):
    """Collect AWS_SSO_CONFIG_* overrides from the environment."""
    environ = os.environ if environ is None else environ
    overrides = {}
    for key in DEFAULTS:
        env_name = ENV_PREFIX + key.upper()
        if env_name in environ:
            overrides[key] = coerce_value(key, environ[env_name])
    return overrides


def load_settings(path=None, environ=None):
    """
    Load settings from defaults, a settings file and the environment.

    Args:
        path: Explicit settings file, or None to search the default locations
        environ: Environment mapping (defaults to os.environ)

    Returns:
        Validated Settings

    Raises:
        SettingsError: If the settings file is unreadable or a value is invalid
    """
    values = {}
    settings_file = find_settings_file(path)
    if settings_file is not None:
        values.update(read_settings_file(settings_file))
    values.update(environment_overrides(environ))

    settings = Settings(source=str(settings_file) if settings_file else None, **values)
    return settings.validate()
