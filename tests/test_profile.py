"""Tests for aws-sso-config profile resolution."""

import os
import shutil
import tempfile
import unittest

from awsssoconfig.errors import AccountMismatch, NotInRepository, ParseError, ProfileNotFound
from awsssoconfig.profile import (
    find_repo_root,
    profile_from_repo_name,
    read_terragrunt_account_id,
    resolve_profile,
)

REPO_PROFILES = {
    "commerce-prod": "commerce-prd",
    "mlplat-prd": "mlplatprd",
}


class TestProfileFromRepoName(unittest.TestCase):
    """Test repository name to profile mapping."""

    def test_mapped_names(self):
        """Names in the exception table map to their profile."""
        for repo, profile in REPO_PROFILES.items():
            self.assertEqual(profile_from_repo_name(repo, REPO_PROFILES), profile)

    def test_unmapped_name_passes_through(self):
        """Names not in the table are returned unchanged."""
        self.assertEqual(profile_from_repo_name("payments", REPO_PROFILES), "payments")

    def test_match_is_case_sensitive(self):
        self.assertEqual(profile_from_repo_name("Commerce-Prod", REPO_PROFILES), "Commerce-Prod")

    def test_no_table(self):
        self.assertEqual(profile_from_repo_name("commerce-prod"), "commerce-prod")


class RepoTestCase(unittest.TestCase):
    """Base class building a temporary repository and AWS config."""

    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()
        self.config_file = os.path.join(self.temp_dir, "aws-config")

    def tearDown(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def make_repo(self, name, terragrunt=None):
        repo = os.path.join(self.temp_dir, name)
        os.makedirs(os.path.join(repo, ".git"))
        if terragrunt is not None:
            with open(os.path.join(repo, "terragrunt.hcl"), "w") as f:
                f.write(terragrunt)
        return repo

    def write_config(self, content):
        with open(self.config_file, "w") as f:
            f.write(content)


class TestFindRepoRoot(RepoTestCase):
    """Test walking up to the repository root."""

    def test_finds_root_from_subdirectory(self):
        repo = self.make_repo("infra")
        nested = os.path.join(repo, "modules", "vpc")
        os.makedirs(nested)
        self.assertEqual(find_repo_root(nested), repo)

    def test_nearest_repository_wins(self):
        """A repository nested in another repository is found first."""
        outer = self.make_repo("outer")
        inner = os.path.join(outer, "vendor", "inner")
        os.makedirs(os.path.join(inner, ".git"))
        self.assertEqual(find_repo_root(os.path.join(inner)), inner)

    def test_not_in_repository(self):
        plain = os.path.join(self.temp_dir, "plain")
        os.makedirs(plain)
        with self.assertRaises(NotInRepository):
            find_repo_root(plain)


class TestTerragruntScan(RepoTestCase):
    """Test the line scan of terragrunt.hcl."""

    def test_first_account_id_wins(self):
        repo = self.make_repo(
            "infra",
            'include {\n  path = "x"\n}\naccount_id = "111111111111"\naccount_id = "222222222222"\n',
        )
        account_id = read_terragrunt_account_id(os.path.join(repo, "terragrunt.hcl"))
        self.assertEqual(account_id, "111111111111")

    def test_short_lines_are_skipped(self):
        repo = self.make_repo("infra", 'account_id\naccount_id =\naccount_id = "333333333333"\n')
        account_id = read_terragrunt_account_id(os.path.join(repo, "terragrunt.hcl"))
        self.assertEqual(account_id, "333333333333")

    def test_no_account_id(self):
        repo = self.make_repo("infra", 'locals {\n  region = "us-east-1"\n}\n')
        self.assertEqual(read_terragrunt_account_id(os.path.join(repo, "terragrunt.hcl")), "")


class TestResolveProfile(RepoTestCase):
    """Test full profile resolution."""

    CONFIG = "[profile foo]\nsso_account_id=123456789012\nregion=us-east-1\n"

    def test_resolves_matching_profile(self):
        repo = self.make_repo("foo", 'account_id = "123456789012"\n')
        self.write_config(self.CONFIG)

        profile = resolve_profile(cwd=repo, environ={}, config_file=self.config_file)
        self.assertEqual(profile, "foo")

    def test_resolves_from_subdirectory(self):
        repo = self.make_repo("foo", 'account_id = "123456789012"\n')
        nested = os.path.join(repo, "envs", "prod")
        os.makedirs(nested)
        self.write_config(self.CONFIG)

        profile = resolve_profile(cwd=nested, environ={}, config_file=self.config_file)
        self.assertEqual(profile, "foo")

    def test_account_mismatch(self):
        repo = self.make_repo("foo", 'account_id = "999999999999"\n')
        self.write_config(self.CONFIG)

        with self.assertRaises(AccountMismatch):
            resolve_profile(cwd=repo, environ={}, config_file=self.config_file)

    def test_missing_terragrunt_is_mismatch(self):
        repo = self.make_repo("foo")
        self.write_config(self.CONFIG)

        with self.assertRaises(AccountMismatch):
            resolve_profile(cwd=repo, environ={}, config_file=self.config_file)

    def test_terragrunt_without_account_id_is_mismatch(self):
        repo = self.make_repo("foo", "terraform {\n}\n")
        self.write_config(self.CONFIG)

        with self.assertRaises(AccountMismatch):
            resolve_profile(cwd=repo, environ={}, config_file=self.config_file)

    def test_profile_not_found(self):
        repo = self.make_repo("bar", 'account_id = "123456789012"\n')
        self.write_config(self.CONFIG)

        with self.assertRaises(ProfileNotFound):
            resolve_profile(cwd=repo, environ={}, config_file=self.config_file)

    def test_missing_account_id_key(self):
        repo = self.make_repo("foo", 'account_id = "123456789012"\n')
        self.write_config("[profile foo]\nregion=us-east-1\n")

        with self.assertRaises(ParseError):
            resolve_profile(cwd=repo, environ={}, config_file=self.config_file)

    def test_missing_config_file(self):
        repo = self.make_repo("foo", 'account_id = "123456789012"\n')

        with self.assertRaises(ParseError):
            resolve_profile(cwd=repo, environ={}, config_file=self.config_file)

    def test_repo_profiles_mapping_is_applied(self):
        repo = self.make_repo("commerce-prod", 'account_id = "123456789012"\n')
        self.write_config("[profile commerce-prd]\nsso_account_id=123456789012\n")

        profile = resolve_profile(
            cwd=repo, environ={}, repo_profiles=REPO_PROFILES, config_file=self.config_file
        )
        self.assertEqual(profile, "commerce-prd")

    def test_aws_profile_override_skips_resolution(self):
        """An AWS_PROFILE already in the environment is left alone."""
        plain = os.path.join(self.temp_dir, "plain")
        os.makedirs(plain)

        profile = resolve_profile(
            cwd=plain, environ={"AWS_PROFILE": "manual"}, config_file=self.config_file
        )
        self.assertIsNone(profile)


if __name__ == "__main__":
    unittest.main()
