import subprocess
from datetime import datetime, timedelta
from unittest.mock import patch

import pytest

from volumemanager.cluster.auth import (
    KerberosAuthProvider,
    StaticAuthProvider,
    auth_provider_for,
)
from volumemanager.cluster.filesystem import PUBLIC_GRANTS, HadoopFileSystem, PublicAclService
from volumemanager.config.settings import CredentialConfig
from volumemanager.errors import AuthenticationError, FileSystemError


def completed(returncode=0, stderr=""):
    return subprocess.CompletedProcess(args=[], returncode=returncode, stdout="", stderr=stderr)


@pytest.fixture
def run():
    with patch("volumemanager.cluster.filesystem.subprocess.run") as mock_run:
        mock_run.return_value = completed()
        yield mock_run


def commands(mock_run):
    return [c.args[0] for c in mock_run.call_args_list]


class TestHadoopFileSystem:
    def test_existing_directory_is_left_alone(self, run):
        HadoopFileSystem().ensure_directory("/data/foo/2026/10")

        assert commands(run) == [["hadoop", "fs", "-test", "-d", "/data/foo/2026/10"]]

    def test_missing_directory_is_created(self, run):
        run.side_effect = [completed(1), completed(), completed()]

        HadoopFileSystem().ensure_directory("/data/foo/2026/10")

        assert commands(run)[1:] == [
            ["hadoop", "fs", "-mkdir", "-p", "/data/foo/2026/10"],
            ["hadoop", "fs", "-chmod", "755", "/data/foo/2026/10"],
        ]

    def test_mkdir_failure_raises(self, run):
        run.side_effect = [completed(1), completed(1, "Permission denied")]

        with pytest.raises(FileSystemError, match="Permission denied"):
            HadoopFileSystem().ensure_directory("/data/foo")

    def test_set_owner(self, run):
        HadoopFileSystem().set_owner("/data/foo", "appuser", "appgroup")
        assert commands(run) == [["hadoop", "fs", "-chown", "appuser:appgroup", "/data/foo"]]

    def test_set_permission_failure_raises(self, run):
        run.return_value = completed(1, "No such file or directory")
        with pytest.raises(FileSystemError):
            HadoopFileSystem().set_permission("/data/foo", "750")

    def test_timeout_raises(self, run):
        run.side_effect = subprocess.TimeoutExpired(cmd="hadoop", timeout=120)
        with pytest.raises(FileSystemError, match="timed out"):
            HadoopFileSystem().set_permission("/data/foo", "750")

    def test_missing_binary_raises(self, run):
        run.side_effect = FileNotFoundError("hadoop")
        with pytest.raises(FileSystemError):
            HadoopFileSystem().set_owner("/data/foo", "appuser", "appgroup")


def test_public_grants_cover_every_permission(run):
    PublicAclService().set_path_public_grants("/data/foo/2026/10/18")

    cmd = commands(run)[0]
    assert cmd[:3] == ["hadoop", "mfs", "-setace"]
    assert cmd[-1] == "/data/foo/2026/10/18"
    grants = dict(zip(cmd[3:-1:2], cmd[4:-1:2]))
    assert grants == {f"-{grant}": "p" for grant in PUBLIC_GRANTS}
    assert len(grants) == 7


KERBEROS = CredentialConfig(
    mode="kerberos",
    principal="mapr@EXAMPLE.COM",
    keytab="/etc/mapr.keytab",
    ticket_lifetime=timedelta(hours=10),
)


class TestKerberosAuthProvider:
    def test_login(self):
        started = datetime(2026, 10, 18, 8, 0)
        provider = KerberosAuthProvider(now=lambda: started)

        with patch("volumemanager.cluster.auth.subprocess.run", return_value=completed()) as mock_run:
            credential = provider.login(KERBEROS)

        assert mock_run.call_args.args[0] == [
            "kinit", "-l", "36000s", "-kt", "/etc/mapr.keytab", "mapr@EXAMPLE.COM"
        ]
        assert credential.principal == "mapr@EXAMPLE.COM"
        assert credential.expires_at == datetime(2026, 10, 18, 18, 0)
        assert not provider.is_expired(credential, datetime(2026, 10, 18, 17, 59))
        assert provider.is_expired(credential, datetime(2026, 10, 18, 18, 0))

    def test_kinit_failure(self):
        with patch(
            "volumemanager.cluster.auth.subprocess.run",
            return_value=completed(1, "Keytab contains no suitable keys"),
        ):
            with pytest.raises(AuthenticationError, match="no suitable keys"):
                KerberosAuthProvider().login(KERBEROS)

    def test_kinit_missing(self):
        with patch("volumemanager.cluster.auth.subprocess.run", side_effect=FileNotFoundError("kinit")):
            with pytest.raises(AuthenticationError):
                KerberosAuthProvider().login(KERBEROS)


def test_static_credentials_never_expire():
    provider = StaticAuthProvider()
    credential = provider.login(CredentialConfig(mode="none", principal="mapr"))

    assert credential.principal == "mapr"
    assert not provider.is_expired(credential, datetime(2100, 1, 1))


def test_auth_provider_for_mode():
    assert isinstance(auth_provider_for(KERBEROS), KerberosAuthProvider)
    assert isinstance(auth_provider_for(CredentialConfig(mode="none")), StaticAuthProvider)
