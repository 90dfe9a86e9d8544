"""
Exceptions raised by aws-sso-config.
"""


class AwsSsoConfigError(Exception):
    """Base class for all aws-sso-config failures."""


class NotInRepository(AwsSsoConfigError):
    """No .git marker was found walking up from the working directory."""


class ProfileNotFound(AwsSsoConfigError):
    """The AWS config file has no section for the candidate profile."""


class ParseError(AwsSsoConfigError):
    """The AWS config file could not be read or lacks a required key."""


class AccountMismatch(AwsSsoConfigError):
    """terragrunt.hcl and the AWS config disagree about the account id."""


class ConfigFileCorrupt(AwsSsoConfigError):
    """The AWS config file could not be parsed before reconciliation."""


class PersistFailure(AwsSsoConfigError):
    """Writing or committing the reconciled config file failed."""

    def __init__(self, message, pending_file=None):
        super().__init__(message)
        self.pending_file = pending_file


class SettingsError(AwsSsoConfigError):
    """Application settings are missing, unreadable or invalid."""


class TokenUnavailable(AwsSsoConfigError):
    """No SSO access token could be found or generated."""
