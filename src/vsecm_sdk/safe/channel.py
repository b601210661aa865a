"""
vsecm_sdk.safe.channel

One-shot mutually authenticated channel to VSecM Safe.

Responsibilities:
- Load fresh SVID material and self-check the local identity before any network I/O.
- Build a TLS client context from the SVID and trust bundle.
- Authorize the peer's SPIFFE ID during the TLS handshake (Safe is the only accepted peer).
- Hand out an `httpx.AsyncClient` whose transport serves exactly one request per connection.
"""

from __future__ import annotations

import contextlib
import ssl
import tempfile
from collections.abc import Callable, Iterable, Iterator
from pathlib import Path
from types import TracebackType
from typing import Any

import httpcore
import httpx

from vsecm_sdk.errors import (
    ConfigurationError,
    IdentitySourceError,
    PeerNotAuthorizedError,
    UntrustedWorkloadError,
)
from vsecm_sdk.identity.matcher import IdentityMatcher
from vsecm_sdk.identity.models import Role, X509Context
from vsecm_sdk.identity.source import IdentitySource
from vsecm_sdk.observability.logging import get_logger
from vsecm_sdk.settings import Settings

log = get_logger(__name__)

# Raises `PeerNotAuthorizedError` (or `ConfigurationError`) to reject the peer.
PeerAuthorizer = Callable[[str | None], None]
TransportFactory = Callable[[X509Context, PeerAuthorizer], httpx.AsyncBaseTransport]


def build_ssl_context(material: X509Context) -> ssl.SSLContext:
    ctx = ssl.create_default_context(
        ssl.Purpose.SERVER_AUTH, cadata=material.bundle_pem.decode("ascii")
    )
    # Peers are authorized by SPIFFE ID (URI SAN), not by DNS name.
    ctx.check_hostname = False
    ctx.verify_mode = ssl.CERT_REQUIRED

    # `load_cert_chain` only accepts paths; the files live for the duration of the call.
    with tempfile.TemporaryDirectory(prefix="vsecm-svid-") as tmp:
        cert_path = Path(tmp) / "svid.pem"
        key_path = Path(tmp) / "svid_key.pem"
        cert_path.write_bytes(material.cert_chain_pem)
        key_path.write_bytes(material.private_key_pem)
        key_path.chmod(0o600)
        ctx.load_cert_chain(certfile=cert_path, keyfile=key_path)
    return ctx


def peer_spiffe_id(peer_cert: dict[str, Any] | None) -> str | None:
    if not peer_cert:
        return None
    ids = [
        value
        for kind, value in peer_cert.get("subjectAltName", ())
        if kind == "URI" and value.startswith("spiffe://")
    ]
    return ids[0] if len(ids) == 1 else None


class _AuthorizingStream(httpcore.AsyncNetworkStream):
    def __init__(self, stream: httpcore.AsyncNetworkStream, authorize: PeerAuthorizer) -> None:
        self._stream = stream
        self._authorize = authorize

    async def read(self, max_bytes: int, timeout: float | None = None) -> bytes:
        return await self._stream.read(max_bytes, timeout=timeout)

    async def write(self, buffer: bytes, timeout: float | None = None) -> None:
        await self._stream.write(buffer, timeout=timeout)

    async def aclose(self) -> None:
        await self._stream.aclose()

    async def start_tls(
        self,
        ssl_context: ssl.SSLContext,
        server_hostname: str | None = None,
        timeout: float | None = None,
    ) -> httpcore.AsyncNetworkStream:
        tls = await self._stream.start_tls(
            ssl_context, server_hostname=server_hostname, timeout=timeout
        )
        ssl_object = tls.get_extra_info("ssl_object")
        peer = peer_spiffe_id(ssl_object.getpeercert() if ssl_object is not None else None)
        try:
            self._authorize(peer)
        except BaseException:
            await tls.aclose()
            raise
        return tls

    def get_extra_info(self, info: str) -> Any:
        return self._stream.get_extra_info(info)


class _AuthorizingBackend(httpcore.AsyncNetworkBackend):
    """
    Wraps the default network backend so the peer check runs right after the handshake.
    """

    def __init__(
        self,
        authorize: PeerAuthorizer,
        backend: httpcore.AsyncNetworkBackend | None = None,
    ) -> None:
        self._authorize = authorize
        self._backend = backend or httpcore.AnyIOBackend()

    async def connect_tcp(
        self,
        host: str,
        port: int,
        timeout: float | None = None,
        local_address: str | None = None,
        socket_options: Iterable[Any] | None = None,
    ) -> httpcore.AsyncNetworkStream:
        stream = await self._backend.connect_tcp(
            host,
            port,
            timeout=timeout,
            local_address=local_address,
            socket_options=socket_options,
        )
        return _AuthorizingStream(stream, self._authorize)

    async def connect_unix_socket(
        self,
        path: str,
        timeout: float | None = None,
        socket_options: Iterable[Any] | None = None,
    ) -> httpcore.AsyncNetworkStream:
        stream = await self._backend.connect_unix_socket(
            path, timeout=timeout, socket_options=socket_options
        )
        return _AuthorizingStream(stream, self._authorize)

    async def sleep(self, seconds: float) -> None:
        await self._backend.sleep(seconds)


_CORE_TO_HTTPX: tuple[tuple[type[Exception], type[httpx.TransportError]], ...] = (
    (httpcore.ConnectTimeout, httpx.ConnectTimeout),
    (httpcore.ReadTimeout, httpx.ReadTimeout),
    (httpcore.WriteTimeout, httpx.WriteTimeout),
    (httpcore.PoolTimeout, httpx.PoolTimeout),
    (httpcore.TimeoutException, httpx.TimeoutException),
    (httpcore.ConnectError, httpx.ConnectError),
    (httpcore.ReadError, httpx.ReadError),
    (httpcore.WriteError, httpx.WriteError),
    (httpcore.NetworkError, httpx.NetworkError),
    (httpcore.RemoteProtocolError, httpx.RemoteProtocolError),
    (httpcore.LocalProtocolError, httpx.LocalProtocolError),
    (httpcore.UnsupportedProtocol, httpx.UnsupportedProtocol),
    (httpcore.ProtocolError, httpx.ProtocolError),
)


@contextlib.contextmanager
def _map_core_errors(request: httpx.Request) -> Iterator[None]:
    try:
        yield
    except Exception as e:
        for core_exc, httpx_exc in _CORE_TO_HTTPX:
            if isinstance(e, core_exc):
                raise httpx_exc(str(e), request=request) from e
        raise


class OneShotTransport(httpx.AsyncBaseTransport):
    """
    httpx transport over an httpcore pool that keeps no idle connections.
    The response body is read in full and the connection released before returning.
    """

    def __init__(self, *, ssl_context: ssl.SSLContext, authorize_peer: PeerAuthorizer) -> None:
        self._pool = httpcore.AsyncConnectionPool(
            ssl_context=ssl_context,
            max_connections=1,
            max_keepalive_connections=0,
            network_backend=_AuthorizingBackend(authorize_peer),
        )

    @classmethod
    def from_x509_context(
        cls, material: X509Context, authorize_peer: PeerAuthorizer
    ) -> OneShotTransport:
        return cls(ssl_context=build_ssl_context(material), authorize_peer=authorize_peer)

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        core_request = httpcore.Request(
            method=request.method,
            url=httpcore.URL(
                scheme=request.url.raw_scheme,
                host=request.url.raw_host,
                port=request.url.port,
                target=request.url.raw_path,
            ),
            headers=request.headers.raw,
            content=await request.aread(),
            extensions=request.extensions,
        )
        with _map_core_errors(request):
            core_response = await self._pool.handle_async_request(core_request)
            try:
                content = await core_response.aread()
            finally:
                await core_response.aclose()

        return httpx.Response(
            status_code=core_response.status,
            headers=core_response.headers,
            content=content,
            extensions=core_response.extensions,
        )

    async def aclose(self) -> None:
        await self._pool.aclose()


class SecureChannel:
    """
    Owns one `httpx.AsyncClient` for one logical request; close it when done.
    """

    def __init__(self, *, spiffe_id: str, client: httpx.AsyncClient) -> None:
        self._spiffe_id = spiffe_id
        self._client = client

    @property
    def spiffe_id(self) -> str:
        return self._spiffe_id

    @property
    def client(self) -> httpx.AsyncClient:
        return self._client

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> SecureChannel:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()


class ChannelBuilder:
    def __init__(
        self,
        *,
        settings: Settings,
        source: IdentitySource,
        matcher: IdentityMatcher,
        transport_factory: TransportFactory | None = None,
    ) -> None:
        self._settings = settings
        self._source = source
        self._matcher = matcher
        self._transport_factory = transport_factory or OneShotTransport.from_x509_context

    def authorize_peer(self, peer_id: str | None) -> None:
        if peer_id is None or not self._matcher.is_safe(peer_id):
            raise PeerNotAuthorizedError(peer_id)

    async def open(self, *, scope: str, role: Role = Role.WORKLOAD) -> SecureChannel:
        """
        Raises `UntrustedWorkloadError` when the local SVID does not classify as `role`;
        in that case nothing has touched the network.
        """

        base_url = httpx.URL(self._settings.safe_endpoint_url)
        # Without TLS there is no handshake, so the peer would never be authorized.
        if base_url.scheme != "https":
            raise ConfigurationError(
                f"{scope}: VSecM Safe endpoint must be an https:// URL, got '{base_url}'"
            )

        try:
            material = await self._source.fetch_x509_context()
        except IdentitySourceError:
            raise
        except Exception as e:
            raise IdentitySourceError(
                f"{scope}: failed getting SVID bundle from the identity source"
            ) from e

        spiffe_id = material.spiffe_id
        if not self._matcher.is_privileged(spiffe_id, role):
            raise UntrustedWorkloadError(scope=scope, spiffe_id=spiffe_id)

        try:
            transport = self._transport_factory(material, self.authorize_peer)
        except (ssl.SSLError, ValueError) as e:
            # Chain and key may come from different rotations.
            raise IdentitySourceError(f"{scope}: SVID material is not usable for TLS") from e

        client = httpx.AsyncClient(
            base_url=base_url,
            transport=transport,
            timeout=httpx.Timeout(self._settings.safe_request_timeout),
            # Hint the server to drop the connection once the response is sent.
            headers={"Connection": "close"},
            trust_env=False,
        )
        log.debug("channel_opened", scope=scope, spiffe_id=spiffe_id, role=str(role))
        return SecureChannel(spiffe_id=spiffe_id, client=client)


# --- Module Notes -----------------------------------------------------------
# Channels are never pooled or reused: polling happens at interval scale, so a fresh
# handshake per call costs little and no idle connections or stale SVIDs linger.
