"""Unit tests for SFTP sessions."""

import os
from datetime import datetime, timezone
from unittest import mock

import paramiko
import pytest

from ftp_tool.client import Client
from ftp_tool.config import SFTPOptions
from ftp_tool.connections import SFTPConnection


class TestSftpEntryPoint:
    """Test connecting and uploading through the sftp entry point."""

    def test_upload_with_profile(self, client, ssh_cls, sftp_session):
        client.sftp("example", lambda c: c.upload("dummy.txt"))

        ssh = ssh_cls.return_value
        ssh.connect.assert_called_once_with(
            hostname="some-data.host",
            port=22,
            username="dummy",
            timeout=30.0,
            allow_agent=False,
            look_for_keys=False,
            password="<some-secret-password>",
        )
        sftp_session.put.assert_called_once_with("dummy.txt", "dummy.txt")
        sftp_session.close.assert_called_once()
        ssh.close.assert_called_once()

    def test_upload_with_explicit_options(self, client, ssh_cls, sftp_session):
        client.sftp("some-data.host", lambda c: c.upload("dummy.txt", to="in/x.txt"), username="dummy", password="pw")

        kwargs = ssh_cls.return_value.connect.call_args.kwargs
        assert kwargs["hostname"] == "some-data.host"
        assert kwargs["username"] == "dummy"
        assert kwargs["password"] == "pw"
        sftp_session.put.assert_called_once_with("dummy.txt", "in/x.txt")

    def test_key_authentication(self, logger, ssh_cls):
        config = {"ftp": {"keyed": {"host": "k.host", "username": "u", "key": "~/.ssh/id_ed25519", "passphrase": "pp"}}}
        Client(config, logger).sftp("keyed", lambda c: c.pwd())

        kwargs = ssh_cls.return_value.connect.call_args.kwargs
        assert kwargs["key_filename"] == [os.path.expanduser("~/.ssh/id_ed25519")]
        assert kwargs["passphrase"] == "pp"
        assert "password" not in kwargs

    def test_password_set_inside_block(self, logger, ssh_cls):
        config = {"ftp": {"nopass": {"host": "n.host", "username": "u"}}}

        def block(conn):
            conn.password = "pw"
            return conn.auth_methods(), conn.pwd()

        methods, _ = Client(config, logger).sftp("nopass", block)
        assert methods == ["password"]
        assert ssh_cls.return_value.connect.call_args.kwargs["password"] == "pw"

    def test_password_cleared_inside_block(self, client, ssh_cls):
        def block(conn):
            conn.password = None
            conn.pwd()

        client.sftp("example", block)
        assert "password" not in ssh_cls.return_value.connect.call_args.kwargs

    def test_auto_add_host_keys_by_default(self, client, ssh_cls):
        client.sftp("example", lambda c: c.pwd())
        policy = ssh_cls.return_value.set_missing_host_key_policy.call_args.args[0]
        assert isinstance(policy, paramiko.AutoAddPolicy)
        ssh_cls.return_value.load_system_host_keys.assert_not_called()

    def test_strict_host_key_checking(self, logger, ssh_cls):
        config = {"strict_host_key_checking": True, "ftp": {"example": {"host": "h", "username": "u"}}}
        Client(config, logger).sftp("example", lambda c: c.pwd())
        ssh = ssh_cls.return_value
        ssh.load_system_host_keys.assert_called_once()
        assert isinstance(ssh.set_missing_host_key_policy.call_args.args[0], paramiko.RejectPolicy)

    def test_close_on_exception(self, client, ssh_cls, sftp_session):
        def block(conn):
            conn.pwd()
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            client.sftp("example", block)
        sftp_session.close.assert_called_once()
        ssh_cls.return_value.close.assert_called_once()

    def test_lazy_connect(self, client, ssh_cls):
        client.sftp("example", lambda c: None)
        ssh_cls.assert_not_called()

    def test_reconnects_when_transport_dropped(self, client, ssh_cls):
        transport = ssh_cls.return_value.get_transport.return_value

        def block(conn):
            conn.pwd()
            transport.is_active.return_value = False
            conn.pwd()

        client.sftp("example", block)
        assert ssh_cls.return_value.connect.call_count == 2


class TestSftpOperations:
    """Test each remote operation of an SFTP session."""

    def run(self, client, block):
        return client.sftp("test.host", block, username="user", password="pass")

    def test_download(self, client, sftp_session):
        self.run(client, lambda c: c.download("remote/data.txt"))
        sftp_session.get.assert_called_once_with("remote/data.txt", "data.txt")

    def test_failed_download_removes_partial_file(self, client, sftp_session, workdir):
        def get(remotepath, localpath):
            (workdir / localpath).write_bytes(b"partial")
            raise OSError("Connection lost")

        sftp_session.get.side_effect = get
        with pytest.raises(OSError):
            self.run(client, lambda c: c.download("remote/data.txt"))
        assert not (workdir / "data.txt").exists()

    def test_mkdir_rmdir(self, client, sftp_session):
        self.run(client, lambda c: (c.mkdir("upload/dir"), c.rmdir("upload/dir")))
        sftp_session.mkdir.assert_called_once_with("upload/dir")
        sftp_session.rmdir.assert_called_once_with("upload/dir")

    def test_delete(self, client, sftp_session):
        self.run(client, lambda c: c.delete("file.txt"))
        sftp_session.remove.assert_called_once_with("file.txt")

    def test_rename(self, client, sftp_session):
        self.run(client, lambda c: c.rename("old.txt", "new.txt"))
        sftp_session.rename.assert_called_once_with("old.txt", "new.txt")

    def test_chdir_and_pwd(self, client, sftp_session):
        sftp_session.normalize.return_value = "/home/user/data"
        assert self.run(client, lambda c: (c.chdir("data"), c.pwd())[1]) == "/home/user/data"
        sftp_session.chdir.assert_called_once_with("data")
        sftp_session.normalize.assert_called_once_with(".")

    def test_list(self, client, sftp_session):
        sftp_session.listdir.return_value = ["list_test2.txt", "list_test1.txt"]
        assert self.run(client, lambda c: c.list()) == ["list_test1.txt", "list_test2.txt"]
        sftp_session.listdir.assert_called_once_with(".")

    def test_stat(self, client, sftp_session):
        attrs = paramiko.SFTPAttributes()
        attrs.st_size = 17
        attrs.st_uid = 1000
        attrs.st_gid = 1000
        attrs.st_mode = 0o100644
        attrs.st_atime = 1700000000
        attrs.st_mtime = 1700000100
        sftp_session.stat.return_value = attrs

        info = self.run(client, lambda c: c.stat("stat_test.txt"))
        assert info == {
            "size": 17,
            "uid": 1000,
            "gid": 1000,
            "permissions": 0o100644,
            "atime": 1700000000,
            "mtime": 1700000100,
        }

    def test_exists(self, client, sftp_session):
        assert self.run(client, lambda c: c.exists("exists_test.txt")) is True

    def test_exists_false_when_missing(self, client, sftp_session):
        sftp_session.stat.side_effect = FileNotFoundError(2, "No such file")
        assert self.run(client, lambda c: c.exists("non_existent.txt")) is False

    def test_exists_propagates_other_errors(self, client, sftp_session):
        sftp_session.stat.side_effect = PermissionError(13, "Permission denied")
        with pytest.raises(PermissionError):
            self.run(client, lambda c: c.exists("secret.txt"))

    def test_file_size_and_mtime(self, client, sftp_session):
        sftp_session.stat.return_value = mock.Mock(st_size=42, st_mtime=1700000000)
        size, mtime = self.run(client, lambda c: (c.file_size("a.txt"), c.mtime("a.txt")))
        assert size == 42
        assert mtime == datetime.fromtimestamp(1700000000, tz=timezone.utc)

    def test_can_connect_false_on_auth_failure(self, client, ssh_cls):
        ssh_cls.return_value.connect.side_effect = paramiko.AuthenticationException("denied")
        assert self.run(client, lambda c: c.can_connect()) is False

    def test_can_connect_false_on_socket_error(self, client, ssh_cls):
        ssh_cls.return_value.connect.side_effect = OSError("unreachable")
        assert self.run(client, lambda c: c.can_connect()) is False

    def test_can_connect(self, client, ssh_cls):
        assert self.run(client, lambda c: c.can_connect()) is True


class TestSftpConnection:
    """Test session object state handling."""

    def test_close_before_connect_is_noop(self, logger):
        conn = SFTPConnection(SFTPOptions(host="h", username="u", password=None, port=22), logger)
        conn.close()
        assert conn.closed

    def test_auth_methods(self, logger):
        options = SFTPOptions(host="h", username="u", password="pw", port=22, keys=["/keys/id_rsa"])
        conn = SFTPConnection(options, logger)
        assert conn.auth_methods() == ["publickey", "password"]
        conn.password = None
        assert conn.auth_methods() == ["publickey"]

    def test_repr(self, logger):
        conn = SFTPConnection(SFTPOptions(host="h", username="u", password="secret", port=22), logger)
        assert repr(conn) == "<SFTPConnection u@h>"
