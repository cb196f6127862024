"""Shared fixtures for the FTP tool tests.

``ftplib`` and ``paramiko`` objects are replaced with mocks so the tests never
open a socket:

    def test_upload(ftp_session, client):
        client.ftp("example", lambda c: c.upload("dummy.txt"))
        ftp_session.storbinary.assert_called_once()
"""

import logging
from unittest import mock

import pytest

from ftp_tool.client import Client

CONFIG = {
    "ftp": {
        "example": {
            "host": "some-data.host",
            "username": "dummy",
            "password": "<some-secret-password>",
        },
    },
}


@pytest.fixture
def logger():
    return logging.getLogger("ftp_tool.tests")


@pytest.fixture
def client(logger):
    return Client(CONFIG, logger)


@pytest.fixture
def workdir(tmp_path, monkeypatch):
    """Temporary working directory holding a small local file."""
    (tmp_path / "dummy.txt").write_text("dummy content", encoding="utf-8")
    monkeypatch.chdir(tmp_path)
    return tmp_path


@pytest.fixture
def ftp_cls():
    with mock.patch("ftp_tool.connections.ftplib.FTP") as cls:
        cls.return_value.pwd.return_value = "/home/user"
        yield cls


@pytest.fixture
def ftp_session(ftp_cls):
    return ftp_cls.return_value


@pytest.fixture
def ssh_cls():
    with mock.patch("ftp_tool.connections.paramiko.SSHClient") as cls:
        cls.return_value.get_transport.return_value.is_active.return_value = True
        yield cls


@pytest.fixture
def sftp_session(ssh_cls):
    return ssh_cls.return_value.open_sftp.return_value
