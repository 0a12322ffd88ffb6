# clone.py
# Copyright (C) 2021 Jelmer Vernooij <jelmer@jelmer.uk>
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

"""Repository clone handling."""

__all__ = ["do_clone"]

import os
from collections.abc import Callable
from typing import TYPE_CHECKING, Optional, Union

from .client import get_http_client
from .errors import CorruptObject, CorruptPack, InvalidArgument
from .log_utils import getLogger
from .objects import COMMIT, TAG, ObjectID, decode_commit
from .pack import unpack_pack
from .refs import HEADREF, LOCAL_BRANCH_PREFIX, LOCAL_REMOTE_PREFIX, Ref
from .repo import CONTROLDIR, Repo
from .worktree import checkout_tree

if TYPE_CHECKING:
    import urllib3

    from .client import FetchPackResult

logger = getLogger(__name__)

DEFAULT_ORIGIN = b"origin"


def _peel(repo: Repo, sha: ObjectID) -> ObjectID:
    """Follow annotated tags until a non-tag object is reached."""
    obj = repo.object_store.get(sha)
    while obj.type_name == TAG:
        header = obj.data.split(b"\n", 1)[0]
        if not header.startswith(b"object "):
            raise CorruptObject(f"tag {obj.id.decode()} has no object header")
        obj = repo.object_store.get(header[len(b"object ") :])
    return obj.id


def _guess_branch(result: "FetchPackResult") -> Optional[Ref]:
    """Return the branch a fetched ref corresponds to, if any."""
    if result.ref.startswith(LOCAL_BRANCH_PREFIX):
        return result.ref
    if result.ref != HEADREF:
        return None
    # HEAD was advertised without a symref; find a branch at the same commit.
    candidates = [
        name
        for name, sha in result.discovery.refs.items()
        if name.startswith(LOCAL_BRANCH_PREFIX) and sha == result.sha
    ]
    for preferred in (LOCAL_BRANCH_PREFIX + b"main", LOCAL_BRANCH_PREFIX + b"master"):
        if preferred in candidates:
            return preferred
    if candidates:
        return candidates[0]
    return None


def _set_origin_config(repo: Repo, origin: bytes, url: str) -> None:
    config = repo.get_config()
    section = (b"remote", origin)
    config.set(section, b"url", url)
    config.set(
        section,
        b"fetch",
        b"+" + LOCAL_BRANCH_PREFIX + b"*:" + LOCAL_REMOTE_PREFIX + origin + b"/*",
    )
    config.write_to_path()


def _set_refs(repo: Repo, origin: bytes, branch: Optional[Ref], sha: ObjectID) -> None:
    if branch is None:
        # Detach HEAD at the fetched commit.
        repo.refs.set_ref(HEADREF, sha)
        return
    shortname = branch[len(LOCAL_BRANCH_PREFIX) :]
    origin_base = LOCAL_REMOTE_PREFIX + origin + b"/"
    repo.refs.set_ref(origin_base + shortname, sha)
    repo.refs.set_symbolic_ref(origin_base + b"HEAD", origin_base + shortname)
    repo.refs.set_ref(branch, sha)
    repo.refs.set_symbolic_ref(HEADREF, branch)


def _check_target(target: str) -> None:
    if not os.path.exists(target):
        return
    if not os.path.isdir(target):
        raise InvalidArgument(
            f"destination path {target} already exists and is not a directory"
        )
    # A .git left behind by an earlier, failed attempt may be reused.
    if [name for name in os.listdir(target) if name != CONTROLDIR]:
        raise InvalidArgument(
            f"destination path {target} already exists and is not an empty directory"
        )


def do_clone(
    url: str,
    target: Union[str, "os.PathLike[str]"],
    checkout: bool = True,
    origin: bytes = DEFAULT_ORIGIN,
    pool_manager: Optional["urllib3.PoolManager"] = None,
    progress: Optional[Callable[[bytes], None]] = None,
) -> Repo:
    """Clone a repository over smart HTTP into a new directory.

    Stages run in order and the first failure is raised. Objects written
    before a failure are left in place; no ref points at them, and
    cloning again into the same target picks them up.

    Args:
      url: URL of the remote repository
      target: Directory to create the clone in; it must not exist, be
        empty, or hold only the control directory of an earlier attempt
      checkout: Whether to write the files of the fetched commit
      origin: Name of the remote to record
      pool_manager: Optional urllib3 pool manager to use for HTTP
      progress: Optional function called with progress output
    Returns: The new repository
    Raises:
      InvalidArgument: if target exists and is not an empty directory
      NetworkError: on transport or protocol failure
      RefNotFound: if the remote has no usable ref
      CorruptPack: if the pack is malformed or lacks the fetched commit
    """
    target = os.fspath(target)
    _check_target(target)
    repo = Repo.init(target, mkdir=True)
    _set_origin_config(repo, origin, url)

    client = get_http_client(
        url, config=repo.get_config_stack(), pool_manager=pool_manager
    )
    result = client.fetch(progress=progress)
    ids = unpack_pack(result.pack_data, repo.object_store)
    logger.info("Received %d objects", len(ids))
    if result.sha not in repo.object_store:
        raise CorruptPack(
            f"pack does not contain the fetched object {result.sha.decode('ascii')}"
        )

    branch = _guess_branch(result)
    _set_refs(repo, origin, branch, result.sha)

    if checkout:
        commit_id = _peel(repo, repo.head())
        commit_obj = repo.object_store.get(commit_id)
        if commit_obj.type_name != COMMIT:
            raise CorruptObject(f"{commit_id.decode('ascii')} is not a commit")
        commit = decode_commit(commit_obj.data)
        checkout_tree(repo.object_store, commit.tree, target)
    return repo
