# repo.py -- For dealing with git repositories.
# Copyright (C) 2007 James Westby <jw+debian@jameswestby.net>
# Copyright (C) 2008-2013 Jelmer Vernooij <jelmer@jelmer.uk>
#
# SPDX-License-Identifier: Apache-2.0 OR GPL-2.0-or-later
# Cairn is dual-licensed under the Apache License, Version 2.0 and the GNU
# General Public License as published by the Free Software Foundation; version 2.0
# or (at your option) any later version. You can redistribute it and/or
# modify it under the terms of either of these two licenses.
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
#
# You should have received a copy of the licenses; if not, see
# <http://www.gnu.org/licenses/> for a copy of the GNU General Public License
# and <http://www.apache.org/licenses/LICENSE-2.0> for a copy of the Apache
# License, Version 2.0.
#

"""Repository access.

A repository is a working directory with a ``.git`` control directory
holding the object store, the refs and the configuration file.
"""

__all__ = [
    "CONTROLDIR",
    "DEFAULT_BRANCH",
    "OBJECTDIR",
    "Repo",
    "get_user_identity",
    "get_user_timestamp",
]

import os
import socket
import time
from typing import Optional, Union

from .config import ConfigFile, StackedConfig
from .errors import NotGitRepository
from .file import ensure_dir_exists
from .log_utils import getLogger
from .object_store import DiskObjectStore
from .objects import ObjectID, parse_timezone
from .refs import HEADREF, LOCAL_BRANCH_PREFIX, DiskRefsContainer

logger = getLogger(__name__)

CONTROLDIR = ".git"
OBJECTDIR = "objects"
REFSDIR = "refs"
REFSDIR_TAGS = "tags"
REFSDIR_HEADS = "heads"

DEFAULT_BRANCH = b"main"

BASE_DIRECTORIES = [
    [OBJECTDIR],
    [REFSDIR],
    [REFSDIR, REFSDIR_TAGS],
    [REFSDIR, REFSDIR_HEADS],
]

PathLike = Union[str, "os.PathLike[str]"]


def _get_default_identity() -> tuple[str, str]:
    for name in ("LOGNAME", "USER", "LNAME", "USERNAME"):
        username = os.environ.get(name)
        if username:
            break
    else:
        username = None

    fullname = None
    try:
        import pwd
    except ImportError:
        pass
    else:
        try:
            entry = pwd.getpwuid(os.getuid())
        except KeyError:
            pass
        else:
            if getattr(entry, "pw_gecos", None):
                fullname = entry.pw_gecos.split(",")[0]
            if username is None:
                username = entry.pw_name
    if username is None:
        username = "unknown"
    if not fullname:
        fullname = username
    email = os.environ.get("EMAIL")
    if email is None:
        email = f"{username}@{socket.gethostname()}"
    return (fullname, email)


def get_user_identity(config: StackedConfig, kind: Optional[str] = None) -> bytes:
    """Determine the identity to use for new commits.

    If kind is set, this first checks
    GIT_${KIND}_NAME and GIT_${KIND}_EMAIL.

    If those variables are not set, then it will fall back
    to reading the user.name and user.email settings from
    the specified configuration.

    If that also fails, then it will fall back to using
    the current users' identity as obtained from the host
    system (e.g. the gecos field, $EMAIL, $USER@$(hostname)).

    Args:
      config: Configuration stack to read from
      kind: Optional kind to return identity for,
        usually either "AUTHOR" or "COMMITTER".

    Returns:
      A user identity
    """
    user: Optional[bytes] = None
    email: Optional[bytes] = None
    if kind:
        user_uc = os.environ.get("GIT_" + kind + "_NAME")
        if user_uc is not None:
            user = user_uc.encode("utf-8")
        email_uc = os.environ.get("GIT_" + kind + "_EMAIL")
        if email_uc is not None:
            email = email_uc.encode("utf-8")
    if user is None:
        try:
            user = config.get(("user",), "name")
        except KeyError:
            user = None
    if email is None:
        try:
            email = config.get(("user",), "email")
        except KeyError:
            email = None
    if user is None or email is None:
        default_user, default_email = _get_default_identity()
        if user is None:
            user = default_user.encode("utf-8")
        if email is None:
            email = default_email.encode("utf-8")
    if email.startswith(b"<") and email.endswith(b">"):
        email = email[1:-1]
    return user + b" <" + email + b">"


def get_user_timestamp(kind: Optional[str] = None) -> tuple[int, int]:
    """Determine the time and timezone offset for new commits.

    GIT_${KIND}_DATE is honoured when set, in git's internal format
    ``<epoch seconds> <+hhmm>``. Otherwise the current time and local
    timezone are used.

    Raises:
      ValueError: if GIT_${KIND}_DATE is malformed
    """
    if kind:
        date = os.environ.get("GIT_" + kind + "_DATE")
        if date:
            try:
                seconds, tz = date.split()
                return int(seconds), parse_timezone(tz.encode("ascii"))
            except ValueError as exc:
                raise ValueError(f"invalid GIT_{kind}_DATE: {date!r}") from exc
    now = int(time.time())
    local = time.localtime(now)
    return now, local.tm_gmtoff


class Repo:
    """A git repository backed by local disk.

    To open an existing repository, call the constructor with
    the path of the repository.

    To create a new repository, use the Repo.init class method.

    Attributes:
      path: Path to the working copy
      object_store: Object store for the repository
      refs: Ref container for the repository
    """

    def __init__(self, root: PathLike) -> None:
        root = os.fspath(root)
        controldir = os.path.join(root, CONTROLDIR)
        if not os.path.isdir(os.path.join(controldir, OBJECTDIR)):
            raise NotGitRepository(f"No git repository was found at {root}")
        self.path = root
        self._controldir = controldir
        self.object_store = DiskObjectStore(os.path.join(controldir, OBJECTDIR))
        self.refs = DiskRefsContainer(controldir)

    def __repr__(self) -> str:
        return f"<Repo at {self.path!r}>"

    def controldir(self) -> str:
        """Return the path of the control directory."""
        return self._controldir

    def _init_files(self) -> None:
        """Write the configuration file of a new repository."""
        path = os.path.join(self._controldir, "config")
        if os.path.exists(path):
            return
        cf = ConfigFile()
        cf.set("core", "repositoryformatversion", "0")
        cf.set("core", "filemode", os.name != "nt")
        cf.set("core", "bare", False)
        cf.write_to_path(path)

    @classmethod
    def init(
        cls,
        path: PathLike,
        mkdir: bool = False,
        default_branch: bytes = DEFAULT_BRANCH,
    ) -> "Repo":
        """Create a new repository, or reinitialize an existing one.

        Existing objects, refs, HEAD and configuration are left alone.

        Args:
          path: Path in which to create the repository
          mkdir: Whether to create the directory
          default_branch: Branch HEAD points at in a new repository
        Returns: `Repo` instance
        """
        path = os.fspath(path)
        if mkdir:
            os.makedirs(path, exist_ok=True)
        controldir = os.path.join(path, CONTROLDIR)
        try:
            os.mkdir(controldir)
        except FileExistsError:
            pass
        for d in BASE_DIRECTORIES:
            ensure_dir_exists(os.path.join(controldir, *d))
        ret = cls(path)
        if ret.refs.read_ref(HEADREF) is None:
            ret.refs.set_symbolic_ref(HEADREF, LOCAL_BRANCH_PREFIX + default_branch)
        ret._init_files()
        logger.debug("initialized repository at %s", path)
        return ret

    def get_config(self) -> ConfigFile:
        """Retrieve the config object.

        Returns: `ConfigFile` object for the ``.git/config`` file.
        """
        path = os.path.join(self._controldir, "config")
        try:
            return ConfigFile.from_path(path)
        except FileNotFoundError:
            ret = ConfigFile()
            ret.path = path
            return ret

    def get_config_stack(self) -> StackedConfig:
        """Return a config stack for this repository.

        The repository configuration comes first, followed by the user's
        global configuration files.
        """
        local_config = self.get_config()
        backends = [local_config, *StackedConfig.default_backends()]
        return StackedConfig(backends, writable=local_config)

    def head(self) -> ObjectID:
        """Return the id HEAD resolves to.

        Raises:
          KeyError: if HEAD does not point at an object, as in a new
            repository
        """
        return self.refs[HEADREF]
