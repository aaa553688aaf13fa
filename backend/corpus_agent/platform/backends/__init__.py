"""Filesystem backends.

Importing this package registers every built-in backend:

- local: host directory
- ftp: FTP server
- sftp: SSH/SFTP server
- smb: SMB2/3 share
- webdav: WebDAV collection
- minio: S3-compatible object store
- git: Git repository (clone plus periodic pull)
"""

from corpus_agent.platform.backends._base import Backend
from corpus_agent.platform.backends.dsn import DSN
from corpus_agent.platform.backends.ftp import FTPBackend
from corpus_agent.platform.backends.git import GitBackend
from corpus_agent.platform.backends.local import LocalBackend
from corpus_agent.platform.backends.object_store import ObjectStoreBackend
from corpus_agent.platform.backends.registry import (
    new_backend,
    register_backend_factory,
    registered_schemes,
)
from corpus_agent.platform.backends.sftp import SFTPBackend
from corpus_agent.platform.backends.smb import SMBBackend
from corpus_agent.platform.backends.webdav import WebDAVBackend

for _backend_class in (
    LocalBackend,
    FTPBackend,
    SFTPBackend,
    SMBBackend,
    WebDAVBackend,
    ObjectStoreBackend,
    GitBackend,
):
    register_backend_factory(_backend_class.scheme, _backend_class.from_dsn)

__all__ = [
    "DSN",
    "Backend",
    "FTPBackend",
    "GitBackend",
    "LocalBackend",
    "ObjectStoreBackend",
    "SFTPBackend",
    "SMBBackend",
    "WebDAVBackend",
    "new_backend",
    "register_backend_factory",
    "registered_schemes",
]
