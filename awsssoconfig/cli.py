"""
Command-line interface for aws-sso-config.
"""

import argparse
import os
import subprocess
import sys

from .core import AWS_PROFILE_ENV, create_sso_session
from .errors import AwsSsoConfigError, PersistFailure, SettingsError, TokenUnavailable
from .log import get_logger
from .profile import resolve_profile
from .reconcile import generate_config_file
from .settings import (
    DEFAULTS,
    DESCRIPTIONS,
    coerce_value,
    default_settings_path,
    find_settings_file,
    load_settings,
    read_settings_file,
    write_settings_file,
)
from .sso_token import get_token


def format_setting(value):
    """Render a settings value on one line."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, tuple)):
        return ",".join(str(item) for item in value)
    if isinstance(value, dict):
        return ",".join(f"{k}={v}" for k, v in sorted(value.items()))
    return str(value)


def cmd_generate(args, logger):
    """Reconcile the AWS config file with the SSO account list."""
    settings = load_settings(args.config)

    session = create_sso_session(settings.sso_region)
    token = get_token(settings.sso_start_url, settings.sso_region, session=session, logger=logger)
    if not token:
        raise TokenUnavailable("could not obtain an SSO access token")

    sso_client = session.client("sso", region_name=settings.sso_region)
    written = generate_config_file(
        sso_client,
        token,
        settings,
        diff=args.diff,
        cleanup=args.cleanup,
        logger=logger,
    )
    print(f"✓ AWS config written to {written}")
    return 0


def cmd_run(args, logger):
    """Run the credential wrapper with AWS_PROFILE set for this repository."""
    settings = load_settings(args.config)

    try:
        profile_name = resolve_profile(
            repo_profiles=settings.repo_profiles,
            config_file=settings.config_file,
            logger=logger,
        )
    except AwsSsoConfigError as e:
        print(f"Error: Could not determine AWS account: {e}", file=sys.stderr)
        return 1

    env = dict(os.environ)
    if profile_name:
        env[AWS_PROFILE_ENV] = profile_name

    wrapped = list(args.command)
    if wrapped and wrapped[0] == "--":
        wrapped = wrapped[1:]
    command = [settings.wrapper_command] + wrapped
    try:
        result = subprocess.run(command, env=env)
    except OSError as e:
        print(f"Error: Failed to run {settings.wrapper_command}: {e}", file=sys.stderr)
        return 1
    return result.returncode


def cmd_profile(args, logger):
    """Print the profile for the current repository."""
    settings = load_settings(args.config)
    profile_name = resolve_profile(
        repo_profiles=settings.repo_profiles,
        config_file=settings.config_file,
        logger=logger,
    )
    if profile_name is None:
        profile_name = os.environ.get(AWS_PROFILE_ENV, "")
    print(profile_name)
    return 0


def cmd_config_list(args, logger):
    print("Available configuration keys:")
    width = max(len(key) for key in DEFAULTS)
    for key in DEFAULTS:
        print(f"  {key.ljust(width)}  {DESCRIPTIONS[key]}")
    return 0


def cmd_config_get(args, logger):
    if args.key not in DEFAULTS:
        raise SettingsError(f"unknown setting: {args.key}")
    settings = load_settings(args.config)
    print(format_setting(settings.get(args.key)))
    return 0


def _settings_file_for_update(path):
    settings_file = find_settings_file(path)
    if settings_file is None:
        return default_settings_path(), {}
    return settings_file, read_settings_file(settings_file)


def cmd_config_set(args, logger):
    settings_file, data = _settings_file_for_update(args.config)
    data[args.key] = coerce_value(args.key, args.value)
    write_settings_file(settings_file, data)
    print(f"✓ Set {args.key} in {settings_file}")
    return 0


def cmd_config_unset(args, logger):
    if args.key not in DEFAULTS:
        raise SettingsError(f"unknown setting: {args.key}")
    settings_file, data = _settings_file_for_update(args.config)
    if args.key in data:
        del data[args.key]
        write_settings_file(settings_file, data)
    print(f"✓ {args.key} reset to default ({format_setting(DEFAULTS[args.key])})")
    return 0


def build_parser():
    parser = argparse.ArgumentParser(
        prog="aws-sso-config",
        description="Generate AWS SSO profiles and pick the right profile for a git repository",
        epilog="Examples:\n"
        "  aws-sso-config generate --diff              # Sync ~/.aws/config with SSO accounts\n"
        "  aws-sso-config generate --cleanup           # Also drop profiles of deleted accounts\n"
        "  aws-sso-config run terraform plan           # Run a command with the repo's profile\n"
        "  aws-sso-config config set sso_start_url https://mycompany.awsapps.com/start",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--config",
        metavar="PATH",
        default=None,
        help="Settings file (YAML or JSON). Defaults to the first aws-sso-config.yaml found in "
        "the current directory, your home directory, ~/.config/aws-sso-config or /etc/aws-sso-config",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Show debug messages",
    )

    subparsers = parser.add_subparsers(dest="command_name", metavar="COMMAND")
    subparsers.required = True

    generate = subparsers.add_parser(
        "generate",
        help="Generate AWS config profiles for all accounts you have access to",
    )
    generate.add_argument(
        "--diff",
        action="store_true",
        help="Show a diff of the AWS config before writing changes",
    )
    generate.add_argument(
        "--cleanup",
        action="store_true",
        help="Remove profiles for accounts listed in deleted_accounts",
    )
    generate.set_defaults(func=cmd_generate)

    run = subparsers.add_parser(
        "run",
        help="Run a command through the credential wrapper using the repository's profile",
    )
    run.add_argument("command", nargs=argparse.REMAINDER, help="Command and arguments to run")
    run.set_defaults(func=cmd_run)

    profile = subparsers.add_parser(
        "profile",
        help="Print the AWS profile for the current git repository",
    )
    profile.set_defaults(func=cmd_profile)

    config = subparsers.add_parser("config", help="Read and write settings")
    config_sub = config.add_subparsers(dest="config_command", metavar="SUBCOMMAND")
    config_sub.required = True

    config_list = config_sub.add_parser("list", help="List all available settings")
    config_list.set_defaults(func=cmd_config_list)

    config_get = config_sub.add_parser("get", help="Print a setting's effective value")
    config_get.add_argument("key")
    config_get.set_defaults(func=cmd_config_get)

    config_set = config_sub.add_parser("set", help="Set a value in the settings file")
    config_set.add_argument("key")
    config_set.add_argument("value")
    config_set.set_defaults(func=cmd_config_set)

    config_unset = config_sub.add_parser("unset", help="Reset a setting to its default")
    config_unset.add_argument("key")
    config_unset.set_defaults(func=cmd_config_unset)

    return parser


def main(argv=None):
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)
    logger = get_logger(verbose=args.verbose)

    try:
        exit_code = args.func(args, logger)
    except PersistFailure as e:
        print(f"Error: {e}", file=sys.stderr)
        if e.pending_file and os.path.exists(e.pending_file):
            print(f"The generated config was left at {e.pending_file}", file=sys.stderr)
        sys.exit(1)
    except AwsSsoConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
