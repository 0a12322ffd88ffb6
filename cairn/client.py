# client.py -- Implementation of the client side git protocols
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

"""Client side support for the Git smart HTTP protocol.

The fetch happens in three steps:

 * discovery: GET ``info/refs?service=git-upload-pack`` lists the remote refs
   and the server capabilities
 * negotiation: the client picks a ref and POSTs ``want`` lines to
   ``git-upload-pack``; no ``have`` lines are sent, so the server answers
   with a pack holding everything reachable from the wanted commit
 * retrieval: the pack is extracted from the response, demultiplexing
   side-band channels when they were negotiated

Only protocol version 0/1 is spoken.

Known capabilities that are used:

 * side-band-64k / side-band
 * ofs-delta
 * agent
 * symref
"""

__all__ = [
    "FetchPackResult",
    "HttpGitClient",
    "RefsDiscovery",
    "Urllib3HttpGitClient",
    "build_upload_pack_request",
    "default_urllib3_manager",
    "default_user_agent_string",
    "extract_pack_data",
    "get_http_client",
    "negotiate_capabilities",
    "read_pkt_refs_v1",
    "select_ref",
]

import ipaddress
import os
from collections.abc import Callable, Iterable, Iterator
from io import BytesIO
from typing import TYPE_CHECKING, Optional, Union
from urllib.parse import urljoin, urlparse

import urllib3
import urllib3.exceptions

import cairn

from .config import Config
from .errors import (
    CorruptPack,
    GitProtocolError,
    HTTPStatusError,
    NetworkError,
    RefNotFound,
)
from .log_utils import getLogger
from .objects import ZERO_SHA, ObjectID, valid_hexsha
from .pack import PACK_SIGNATURE
from .protocol import (
    CAPABILITIES_REF,
    CAPABILITY_AGENT,
    CAPABILITY_OFS_DELTA,
    CAPABILITY_SIDE_BAND,
    CAPABILITY_SIDE_BAND_64K,
    CAPABILITY_SYMREF,
    SIDE_BAND_CHANNEL_DATA,
    SIDE_BAND_CHANNEL_FATAL,
    SIDE_BAND_CHANNEL_PROGRESS,
    Protocol,
    extract_capabilities,
    format_capability_line,
    parse_capability,
    pkt_line,
)
from .refs import HEADREF, LOCAL_BRANCH_PREFIX

if TYPE_CHECKING:
    from urllib3.response import HTTPResponse

logger = getLogger(__name__)

Ref = bytes

UPLOAD_PACK_SERVICE = "git-upload-pack"

# Branches tried, in order, when HEAD is not advertised.
DEFAULT_BRANCHES = (LOCAL_BRANCH_PREFIX + b"main", LOCAL_BRANCH_PREFIX + b"master")

_RBUFSIZE = 65536


def default_user_agent_string() -> str:
    """Return the default user agent string for cairn."""
    # Start user agent with "git/", because GitHub requires this.
    return "git/cairn/{}".format(".".join([str(x) for x in cairn.__version__]))


def check_for_proxy_bypass(base_url: Optional[str]) -> bool:
    """Check whether no_proxy excludes the host of base_url from proxying."""
    if not base_url:
        return False
    no_proxy_str = os.environ.get("no_proxy") or os.environ.get("NO_PROXY")
    if not no_proxy_str:
        return False
    hostname = urlparse(base_url).hostname
    if hostname is None:
        return False
    try:
        hostname_ip = ipaddress.ip_address(hostname)
    except ValueError:
        hostname_ip = None

    for no_proxy_value in no_proxy_str.split(","):
        no_proxy_value = no_proxy_value.strip()
        if not no_proxy_value:
            continue
        if no_proxy_value == "*":
            return True
        if hostname_ip is not None:
            try:
                if hostname_ip in ipaddress.ip_network(no_proxy_value, strict=False):
                    return True
            except ValueError:
                pass
            continue
        no_proxy_value = no_proxy_value.lower().lstrip(".")
        hostname = hostname.lower()
        if hostname == no_proxy_value or hostname.endswith("." + no_proxy_value):
            return True
    return False


def default_urllib3_manager(
    config: Optional[Config],
    pool_manager_cls: Optional[type] = None,
    proxy_manager_cls: Optional[type] = None,
    base_url: Optional[str] = None,
    timeout: Optional[float] = None,
) -> Union["urllib3.ProxyManager", "urllib3.PoolManager"]:
    """Return urllib3 connection pool manager.

    Honour detected proxy configurations.

    Args:
      config: `cairn.config.Config` instance with Git configuration.
      pool_manager_cls: Pool manager class to use
      proxy_manager_cls: Proxy manager class to use
      base_url: Base URL for proxy bypass checks
      timeout: Timeout for HTTP requests in seconds; http.timeout is used
        when not given

    Returns:
      Either pool_manager_cls (defaults to `urllib3.ProxyManager`) instance for
      proxy configurations, proxy_manager_cls
      (defaults to `urllib3.PoolManager`) instance otherwise
    """
    proxy_server: Optional[str] = None
    user_agent: Optional[str] = None
    ca_certs: Optional[str] = None
    ssl_verify: Optional[bool] = None

    for proxyname in ("https_proxy", "http_proxy", "all_proxy"):
        proxy_server = os.environ.get(proxyname)
        if proxy_server:
            break

    if proxy_server:
        if check_for_proxy_bypass(base_url):
            proxy_server = None

    if config is not None:
        if proxy_server is None:
            try:
                proxy_server = config.get(b"http", b"proxy").decode("utf-8")
            except KeyError:
                pass
        try:
            user_agent = config.get(b"http", b"useragent").decode("utf-8")
        except KeyError:
            pass
        ssl_verify = config.get_boolean(b"http", b"sslVerify")
        try:
            ca_certs = config.get(b"http", b"sslCAInfo").decode("utf-8")
        except KeyError:
            pass
        if timeout is None:
            try:
                timeout = float(config.get(b"http", b"timeout").decode("utf-8"))
            except KeyError:
                pass

    if user_agent is None:
        user_agent = default_user_agent_string()

    headers = {"User-agent": user_agent}

    kwargs: dict[str, Union[str, float, None]] = {
        "ca_certs": ca_certs,
    }
    if timeout is not None:
        kwargs["timeout"] = timeout
    if ssl_verify is False:
        kwargs["cert_reqs"] = "CERT_NONE"
    else:
        kwargs["cert_reqs"] = "CERT_REQUIRED"

    manager: Union[urllib3.ProxyManager, urllib3.PoolManager]
    if proxy_server:
        if proxy_manager_cls is None:
            proxy_manager_cls = urllib3.ProxyManager
        proxy_server_url = urlparse(proxy_server)
        if proxy_server_url.username is not None:
            proxy_headers = urllib3.make_headers(
                proxy_basic_auth=f"{proxy_server_url.username}:{proxy_server_url.password or ''}"
            )
        else:
            proxy_headers = {}
        manager = proxy_manager_cls(
            proxy_server, proxy_headers=proxy_headers, headers=headers, **kwargs
        )
    else:
        if pool_manager_cls is None:
            pool_manager_cls = urllib3.PoolManager
        manager = pool_manager_cls(headers=headers, **kwargs)

    return manager


def read_pkt_refs_v1(
    pkt_seq: Iterable[bytes],
) -> tuple[dict[Ref, ObjectID], set[bytes]]:
    """Read a protocol version 1 ref advertisement.

    Args:
      pkt_seq: Sequence of pkt-lines, up to the terminating flush-pkt
    Returns: Tuple of (refs, server capabilities)
    Raises:
      GitProtocolError: if the server sent an error, or a line is malformed
    """
    server_capabilities = None
    refs: dict[Ref, ObjectID] = {}
    for pkt in pkt_seq:
        try:
            (sha, ref) = pkt.rstrip(b"\n").split(None, 1)
        except ValueError as exc:
            raise GitProtocolError(f"invalid ref advertisement line {pkt!r}") from exc
        if sha == b"ERR":
            raise GitProtocolError(ref.decode("utf-8", "replace"))
        if server_capabilities is None:
            (ref, server_capabilities) = extract_capabilities(ref)
        if not valid_hexsha(sha):
            raise GitProtocolError(f"invalid object id {sha!r} for {ref!r}")
        refs[ref] = sha

    if len(refs) == 0:
        return {}, set()
    if refs == {CAPABILITIES_REF: ZERO_SHA}:
        refs = {}
    assert server_capabilities is not None
    return refs, set(server_capabilities)


def _extract_symrefs_and_agent(
    capabilities: Iterable[bytes],
) -> tuple[dict[Ref, Ref], Optional[bytes]]:
    """Extract symrefs and agent from capabilities.

    Args:
     capabilities: List of capabilities
    Returns:
     (symrefs, agent) tuple
    """
    symrefs = {}
    agent = None
    for capability in capabilities:
        k, v = parse_capability(capability)
        if k == CAPABILITY_SYMREF:
            assert v is not None
            (src, dst) = v.split(b":", 1)
            symrefs[src] = dst
        if k == CAPABILITY_AGENT:
            agent = v
    return (symrefs, agent)


class RefsDiscovery:
    """Result of ref discovery.

    Attributes:
      refs: Dictionary mapping ref name to id, in advertisement order
      capabilities: Set of capabilities the server advertised
      symrefs: Dictionary mapping symbolic ref name to its target
      agent: Server agent string, if advertised
    """

    def __init__(
        self,
        refs: dict[Ref, ObjectID],
        capabilities: set[bytes],
        symrefs: Optional[dict[Ref, Ref]] = None,
        agent: Optional[bytes] = None,
    ) -> None:
        self.refs = refs
        self.capabilities = capabilities
        self.symrefs = symrefs or {}
        self.agent = agent

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.refs!r}, {self.symrefs!r})"


class FetchPackResult:
    """Result of a fetch.

    Attributes:
      discovery: The RefsDiscovery the fetch started from
      ref: Name of the ref that was fetched
      sha: Id the ref pointed at
      pack_data: The pack sent by the server
    """

    def __init__(
        self, discovery: RefsDiscovery, ref: Ref, sha: ObjectID, pack_data: bytes
    ) -> None:
        self.discovery = discovery
        self.ref = ref
        self.sha = sha
        self.pack_data = pack_data

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.ref!r}, {self.sha!r})"


def select_ref(
    refs: dict[Ref, ObjectID], symrefs: Optional[dict[Ref, Ref]] = None
) -> tuple[Ref, ObjectID]:
    """Pick the single ref a clone checks out.

    Preference order: the branch HEAD is a symbolic ref to, HEAD itself,
    refs/heads/main, refs/heads/master, then the first advertised branch.

    Returns: Tuple of (ref name, id)
    Raises:
      RefNotFound: if no usable ref was advertised
    """
    head_target = (symrefs or {}).get(HEADREF)
    if head_target is not None and head_target in refs:
        return head_target, refs[head_target]
    if HEADREF in refs:
        return HEADREF, refs[HEADREF]
    for name in DEFAULT_BRANCHES:
        if name in refs:
            return name, refs[name]
    for name, sha in refs.items():
        if name.startswith(LOCAL_BRANCH_PREFIX):
            return name, sha
    raise RefNotFound("remote advertised no usable refs")


def negotiate_capabilities(server_capabilities: Iterable[bytes]) -> list[bytes]:
    """Pick the capabilities to request from those the server offers."""
    server_capabilities = set(server_capabilities)
    capabilities = []
    if CAPABILITY_SIDE_BAND_64K in server_capabilities:
        capabilities.append(CAPABILITY_SIDE_BAND_64K)
    elif CAPABILITY_SIDE_BAND in server_capabilities:
        capabilities.append(CAPABILITY_SIDE_BAND)
    if CAPABILITY_OFS_DELTA in server_capabilities:
        capabilities.append(CAPABILITY_OFS_DELTA)
    capabilities.append(
        CAPABILITY_AGENT + b"=" + default_user_agent_string().encode("ascii")
    )
    return capabilities


def build_upload_pack_request(
    wants: Iterable[ObjectID], capabilities: Iterable[bytes] = ()
) -> bytes:
    """Build the body of an upload-pack request.

    The first want line carries the capabilities. No have lines are sent.

    Raises:
      ValueError: if wants is empty or contains an invalid id
    """
    body = BytesIO()
    first = True
    for want in wants:
        if not valid_hexsha(want):
            raise ValueError(f"invalid object id {want!r}")
        line = b"want " + want
        if first:
            line += format_capability_line(capabilities)
            first = False
        body.write(pkt_line(line + b"\n"))
    if first:
        raise ValueError("no objects wanted")
    body.write(pkt_line(None))
    body.write(pkt_line(b"done\n"))
    return body.getvalue()


def _read_side_band64k_data(pkt_seq: Iterable[bytes]) -> Iterator[tuple[int, bytes]]:
    """Read per-channel data.

    This requires the side-band-64k capability.

    Args:
      pkt_seq: Sequence of packets to read
    """
    for pkt in pkt_seq:
        if not pkt:
            raise GitProtocolError("protocol error: no band designator")
        channel = ord(pkt[:1])
        yield channel, pkt[1:]


def _log_progress(data: bytes) -> None:
    for line in data.replace(b"\r", b"\n").splitlines():
        if line.strip():
            logger.debug("remote: %s", line.decode("utf-8", "replace").rstrip())


def extract_pack_data(
    read: Callable[[int], bytes],
    capabilities: Iterable[bytes],
    progress: Optional[Callable[[bytes], None]] = None,
    rbufsize: int = _RBUFSIZE,
) -> bytes:
    """Extract the pack from an upload-pack response.

    Args:
      read: Read function for the response body
      capabilities: Capabilities that were negotiated
      progress: Optional function called with side-band progress data
      rbufsize: Read buffer size
    Returns: The pack data
    Raises:
      GitProtocolError: if the server reports an error
      CorruptPack: if the data does not start with a pack signature
    """
    capabilities = set(capabilities)
    if progress is None:
        progress = _log_progress
    proto = Protocol(read)
    pkt = proto.read_pkt_line()
    while pkt:
        parts = pkt.rstrip(b"\n").split(b" ")
        if parts[0] == b"ERR":
            raise GitProtocolError(pkt[4:].rstrip(b"\n").decode("utf-8", "replace"))
        if len(parts) < 3 or parts[2] not in (
            b"ready",
            b"continue",
            b"common",
        ):
            break
        pkt = proto.read_pkt_line()

    chunks = []
    if capabilities & {CAPABILITY_SIDE_BAND_64K, CAPABILITY_SIDE_BAND}:
        for chan, data in _read_side_band64k_data(proto.read_pkt_seq()):
            if chan == SIDE_BAND_CHANNEL_DATA:
                chunks.append(data)
            elif chan == SIDE_BAND_CHANNEL_PROGRESS:
                progress(data)
            elif chan == SIDE_BAND_CHANNEL_FATAL:
                raise GitProtocolError(
                    "remote error: " + data.decode("utf-8", "replace").strip()
                )
            else:
                raise GitProtocolError(f"Invalid sideband channel {chan}")
    else:
        while True:
            data = read(rbufsize)
            if data == b"":
                break
            chunks.append(data)
    pack_data = b"".join(chunks)
    if not pack_data.startswith(PACK_SIGNATURE):
        raise CorruptPack("response does not contain a pack")
    return pack_data


def _wrap_urllib3_exceptions(
    func: Callable[..., bytes],
) -> Callable[..., bytes]:
    def wrapper(*args: object, **kwargs: object) -> bytes:
        try:
            return func(*args, **kwargs)
        except urllib3.exceptions.HTTPError as error:
            raise GitProtocolError(str(error)) from error

    return wrapper


class Urllib3HttpGitClient:
    """Git client that uses urllib3 for HTTP(S) connections."""

    def __init__(
        self,
        base_url: str,
        pool_manager: Optional["urllib3.PoolManager"] = None,
        config: Optional[Config] = None,
        timeout: Optional[float] = None,
        extra_headers: Optional[dict[str, str]] = None,
    ) -> None:
        self._base_url = base_url.rstrip("/") + "/"
        self._timeout = timeout
        self._extra_headers = extra_headers or {}
        if pool_manager is None:
            self.pool_manager = default_urllib3_manager(
                config, base_url=base_url, timeout=timeout
            )
        else:
            self.pool_manager = pool_manager
        self.config = config

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self._base_url!r})"

    def get_url(self) -> str:
        return self._base_url.rstrip("/")

    def _http_request(
        self,
        url: str,
        headers: Optional[dict[str, str]] = None,
        data: Optional[bytes] = None,
    ) -> tuple["HTTPResponse", Callable[[int], bytes]]:
        """Perform HTTP request.

        Args:
          url: Request URL.
          headers: Optional custom headers to override defaults.
          data: Request data; a POST is sent when given.

        Returns:
          Tuple (response, read), where response is an urllib3
          response object with additional content_type and
          redirect_location properties, and read is a consumable read
          method for the response data.

        Raises:
          GitProtocolError: on a transport failure
          HTTPStatusError: if the server answers with a status other than 200
        """
        req_headers = dict(getattr(self.pool_manager, "headers", {}))
        req_headers.update(self._extra_headers)
        if headers is not None:
            req_headers.update(headers)
        req_headers["Pragma"] = "no-cache"

        request_kwargs: dict[str, object] = {
            "headers": req_headers,
            "preload_content": False,
        }
        if self._timeout is not None:
            request_kwargs["timeout"] = self._timeout

        try:
            if data is None:
                resp = self.pool_manager.request("GET", url, **request_kwargs)
            else:
                request_kwargs["body"] = data
                resp = self.pool_manager.request("POST", url, **request_kwargs)
        except urllib3.exceptions.HTTPError as e:
            raise GitProtocolError(str(e)) from e

        if resp.status != 200:
            raise HTTPStatusError(resp.status, url)

        resp.content_type = resp.headers.get("Content-Type")  # type: ignore[attr-defined]
        resp_url = resp.geturl()
        resp.redirect_location = resp_url if resp_url != url else ""  # type: ignore[attr-defined]
        return resp, _wrap_urllib3_exceptions(resp.read)

    def discover_refs(self) -> RefsDiscovery:
        """Retrieve the refs and capabilities of the remote repository.

        Raises:
          NetworkError: on transport failure, an HTTP status other than 200,
            or a malformed advertisement
        """
        tail = "info/refs"
        headers = {"Accept": "*/*"}
        tail += f"?service={UPLOAD_PACK_SERVICE}"
        url = urljoin(self._base_url, tail)
        resp, read = self._http_request(url, headers)

        if resp.redirect_location:
            # Something changed (redirect!), so let's update the base URL
            if not resp.redirect_location.endswith(tail):
                raise GitProtocolError(
                    f"Redirected from URL {url} to URL {resp.redirect_location} without {tail}"
                )
            self._base_url = urljoin(url, resp.redirect_location[: -len(tail)])

        try:
            content_type = resp.content_type
            if content_type is not None and not content_type.startswith(
                "application/x-git-"
            ):
                raise GitProtocolError(
                    f"{self._base_url} does not support the smart HTTP protocol "
                    f"(content type {content_type})"
                )
            proto = Protocol(read)
            pkts = list(proto.read_pkt_seq())
            if pkts and pkts[0].rstrip(b"\n") == (
                b"# service=" + UPLOAD_PACK_SERVICE.encode("ascii")
            ):
                # The service announcement is followed by a flush-pkt.
                pkts = list(proto.read_pkt_seq())
            refs, server_capabilities = read_pkt_refs_v1(pkts)
        finally:
            resp.close()
        symrefs, agent = _extract_symrefs_and_agent(server_capabilities)
        logger.debug(
            "discovered %d refs at %s (agent %r)", len(refs), self._base_url, agent
        )
        return RefsDiscovery(refs, server_capabilities, symrefs, agent)

    def _smart_request(
        self, service: str, url: str, data: bytes
    ) -> tuple["HTTPResponse", Callable[[int], bytes]]:
        """Send a 'smart' HTTP request.

        This is a simple wrapper around _http_request that sets
        a couple of extra headers.
        """
        assert url[-1] == "/"
        url = urljoin(url, service)
        result_content_type = f"application/x-{service}-result"
        headers = {
            "Content-Type": f"application/x-{service}-request",
            "Accept": result_content_type,
            "Content-Length": str(len(data)),
        }
        resp, read = self._http_request(url, headers, data)
        if (
            resp.content_type is not None
            and resp.content_type.split(";")[0] != result_content_type
        ):
            resp.close()
            raise GitProtocolError(
                f"Invalid content-type from server: {resp.content_type}"
            )
        return resp, read

    def fetch_pack(
        self,
        wants: list[ObjectID],
        server_capabilities: Iterable[bytes],
        progress: Optional[Callable[[bytes], None]] = None,
    ) -> bytes:
        """Retrieve a pack holding the wanted objects and their history.

        Args:
          wants: Ids of the objects to fetch
          server_capabilities: Capabilities from discovery
          progress: Optional function called with progress output
        Returns: Pack data
        """
        capabilities = negotiate_capabilities(server_capabilities)
        body = build_upload_pack_request(wants, capabilities)
        logger.debug(
            "requesting %d objects with capabilities %r", len(wants), capabilities
        )
        resp, read = self._smart_request(UPLOAD_PACK_SERVICE, self._base_url, body)
        try:
            return extract_pack_data(read, capabilities, progress=progress)
        finally:
            resp.close()

    def fetch(
        self, progress: Optional[Callable[[bytes], None]] = None
    ) -> FetchPackResult:
        """Discover refs, select one and retrieve the pack for it.

        Raises:
          RefNotFound: if the remote has no usable ref
          NetworkError: on transport or protocol failure
          CorruptPack: if the response holds no pack
        """
        discovery = self.discover_refs()
        ref, sha = select_ref(discovery.refs, discovery.symrefs)
        logger.debug("selected %s at %s", ref.decode("utf-8", "replace"), sha.decode())
        pack_data = self.fetch_pack([sha], discovery.capabilities, progress=progress)
        return FetchPackResult(discovery, ref, sha, pack_data)


HttpGitClient = Urllib3HttpGitClient


def get_http_client(
    location: str,
    config: Optional[Config] = None,
    pool_manager: Optional["urllib3.PoolManager"] = None,
) -> HttpGitClient:
    """Obtain a client for a URL.

    Raises:
      NetworkError: if the URL does not use http or https
    """
    parsed = urlparse(location)
    if parsed.scheme not in ("http", "https"):
        raise NetworkError(
            f"unsupported URL scheme in {location!r}; only http(s) is supported"
        )
    return HttpGitClient(location, pool_manager=pool_manager, config=config)
