"""
AWS file locations, config file I/O and boto3 session helpers.
"""

import configparser
import os
from io import StringIO
from pathlib import Path

import boto3

from .errors import ConfigFileCorrupt

AWS_PROFILE_ENV = "AWS_PROFILE"


def get_aws_config_path():
    """Get the AWS config file path."""
    aws_config = os.path.expanduser("~/.aws/config")
    return aws_config


def get_sso_cache_dir():
    """Get the AWS SSO token cache directory."""
    return os.path.expanduser("~/.aws/sso/cache")


def profile_section_name(profile_name):
    """Section name of a named profile in ~/.aws/config."""
    return f"profile {profile_name}"


class AwsConfigParser(configparser.ConfigParser):
    """
    ConfigParser that remembers the text it was loaded from.

    configparser drops comments and normalizes formatting when it writes.
    This parser keeps the raw text of every section it read and records
    which sections were changed afterwards, so write_aws_config can copy
    unchanged sections (comments included) back out byte for byte.
    """

    def __init__(self):
        super().__init__(interpolation=None, delimiters=("=",))
        self.preamble = ""
        self.raw_sections = {}
        self.changed_sections = set()

    def optionxform(self, optionstr):
        # Preserve case sensitivity
        return optionstr

    def load_raw(self, text):
        """Record the raw text of each section in text."""
        preamble, raw_sections = split_sections(text, self.SECTCRE)
        expected = set(self.sections())
        if self.defaults():
            expected.add(self.default_section)
        if set(raw_sections) - {self.default_section} != expected - {self.default_section}:
            # Layout this splitter does not follow; write every section fresh
            preamble, raw_sections = "", {}
        self.preamble = preamble
        self.raw_sections = raw_sections
        self.changed_sections = set()

    def add_section(self, section):
        super().add_section(section)
        self.changed_sections.add(section)

    def set(self, section, option, value=None):
        if self.has_option(section, option) and self.get(section, option) == value:
            return
        super().set(section, option, value)
        self.changed_sections.add(section)

    def remove_option(self, section, option):
        existed = super().remove_option(section, option)
        if existed:
            self.changed_sections.add(section)
        return existed

    def remove_section(self, section):
        existed = super().remove_section(section)
        self.changed_sections.discard(section)
        self.raw_sections.pop(section, None)
        return existed


def split_sections(text, header_re=configparser.ConfigParser.SECTCRE):
    """
    Split INI text into the lines before the first header and one block per
    section.

    A block runs from its header line up to the next header and keeps every
    comment and blank line in between. Indented lines are value
    continuations and never start a section.

    Returns:
        tuple: (preamble, {section name: block text})
    """
    preamble = []
    blocks = {}
    current = preamble

    for line in StringIO(text):
        if line[:1] not in (" ", "\t"):
            mo = header_re.match(line.strip())
            if mo:
                current = []
                blocks[mo.group("header")] = current
        current.append(line)

    return "".join(preamble), {name: "".join(lines) for name, lines in blocks.items()}


def new_config_parser():
    """
    Create a ConfigParser suited to the AWS config file.

    Interpolation is disabled so values such as URLs containing '%' survive
    a read/write cycle, and option names keep their case.
    """
    return AwsConfigParser()


def read_aws_config(config_file):
    """
    Read and parse an AWS config file.

    Args:
        config_file: Path to config file

    Returns:
        AwsConfigParser object with config

    Raises:
        ConfigFileCorrupt: If the file cannot be opened or parsed
    """
    config = new_config_parser()
    try:
        with open(config_file, "r") as f:
            text = f.read()
        config.read_string(text, source=str(config_file))
    except (OSError, configparser.Error) as e:
        raise ConfigFileCorrupt(f"could not parse AWS config {config_file}: {e}")
    config.load_raw(text)
    return config


def render_aws_config(config):
    """
    Render a parsed AWS config as text using '=' without surrounding spaces.

    Sections that were read from a file and not changed since are copied
    from the original text unchanged. Changed and new sections are written
    by configparser and preceded by a blank line.
    """
    rendered = StringIO()
    config.write(rendered, space_around_delimiters=False)
    _, rendered_sections = split_sections(rendered.getvalue(), config.SECTCRE)

    raw_sections = getattr(config, "raw_sections", {})
    changed = getattr(config, "changed_sections", set(rendered_sections))

    out = getattr(config, "preamble", "")
    names = list(config.sections())
    if config.defaults() or config.default_section in raw_sections:
        names.insert(0, config.default_section)

    for index, name in enumerate(names):
        if name in raw_sections and name not in changed:
            out += raw_sections[name]
            continue
        if out and not out.endswith("\n"):
            out += "\n"
        if index and not out.endswith("\n\n"):
            out += "\n"
        out += rendered_sections[name]
    return out


def write_aws_config(config_file, config):
    """
    Write an AWS config file using '=' without surrounding spaces.

    Sections keep the order in which the parser holds them, and unchanged
    sections keep their comments and layout.
    """
    Path(config_file).parent.mkdir(parents=True, exist_ok=True)
    with open(config_file, "w") as f:
        f.write(render_aws_config(config))


def create_sso_session(region_name):
    """
    Create an unauthenticated boto3 session for SSO calls.

    The SSO portal and OIDC APIs authenticate with the access token passed
    to each call, so no profile credentials are needed.
    """
    return boto3.Session(region_name=region_name)
