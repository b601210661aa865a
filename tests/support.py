"""
tests.support

Test doubles and helpers shared across the suite.

Responsibilities:
- Well-known SPIFFE IDs for each role.
- A fake VSecM Safe (FastAPI) and recording transports around it.
- A static identity source and a fake clock.
- Throwaway SVID certificates, optionally issued by one shared authority.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

import httpx
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, PlainTextResponse, Response

from vsecm_sdk.identity.matcher import IdentityMatcher
from vsecm_sdk.identity.models import X509Context
from vsecm_sdk.safe.channel import ChannelBuilder, PeerAuthorizer
from vsecm_sdk.safe.client import SafeClient
from vsecm_sdk.settings import Settings

WORKLOAD_ID = "spiffe://vsecm.com/workload/app/ns/default/sa/default/n/pod-1"
CLERK_ID = "spiffe://vsecm.com/workload/vsecm-clerk/ns/vsecm-clerk/sa/vsecm-safe/n/clerk-1"
SAFE_ID = "spiffe://vsecm.com/workload/vsecm-safe/ns/vsecm-system/sa/vsecm-safe/n/safe-1"
FOREIGN_ID = "spiffe://example.org/workload/app/ns/default/sa/default/n/pod-1"


class StaticIdentitySource:
    def __init__(self, spiffe_id: str) -> None:
        self.spiffe_id = spiffe_id
        self.calls = 0

    async def fetch_x509_context(self) -> X509Context:
        self.calls += 1
        return X509Context(
            spiffe_id=self.spiffe_id,
            cert_chain_pem=b"chain",
            private_key_pem=b"key",
            bundle_pem=b"bundle",
        )


class RecordingTransport(httpx.AsyncBaseTransport):
    """
    Wraps another transport; counts requests and closes.
    """

    def __init__(self, inner: httpx.AsyncBaseTransport) -> None:
        self.inner = inner
        self.requests: list[httpx.Request] = []
        self.closed = False

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return await self.inner.handle_async_request(request)

    async def aclose(self) -> None:
        self.closed = True
        await self.inner.aclose()


class TransportRecorder:
    """
    `TransportFactory` for `ChannelBuilder` that records every transport it builds.
    """

    def __init__(self, inner_factory) -> None:
        self._inner_factory = inner_factory
        self.transports: list[RecordingTransport] = []
        self.authorizers: list[PeerAuthorizer] = []

    def __call__(self, material: X509Context, authorize: PeerAuthorizer) -> RecordingTransport:
        self.authorizers.append(authorize)
        transport = RecordingTransport(self._inner_factory())
        self.transports.append(transport)
        return transport

    @property
    def request_count(self) -> int:
        return sum(len(t.requests) for t in self.transports)


def create_fake_safe() -> FastAPI:
    app = FastAPI()
    app.state.fetch_status = 200
    app.state.fetch_body = {
        "data": '{"username":"admin","password":"VSecMRocks"}',
        "created": "2024-01-01T00:00:00Z",
        "updated": "2024-01-02T00:00:00Z",
    }
    app.state.fetch_raw = None
    app.state.store_status = 200
    app.state.stored = []

    @app.get("/workload/v1/secrets")
    async def fetch() -> Response:
        if app.state.fetch_raw is not None:
            return PlainTextResponse(app.state.fetch_raw, status_code=app.state.fetch_status)
        if app.state.fetch_status != 200:
            return JSONResponse({"err": "nope"}, status_code=app.state.fetch_status)
        return JSONResponse(app.state.fetch_body)

    @app.post("/workload/v1/secrets")
    async def store(request: Request) -> Response:
        body: dict[str, Any] = await request.json()
        app.state.stored.append(body)
        return JSONResponse({}, status_code=app.state.store_status)

    return app


def make_client(
    *,
    settings: Settings,
    matcher: IdentityMatcher,
    spiffe_id: str,
    recorder: TransportRecorder,
) -> tuple[SafeClient, StaticIdentitySource]:
    source = StaticIdentitySource(spiffe_id)
    channels = ChannelBuilder(
        settings=settings, source=source, matcher=matcher, transport_factory=recorder
    )
    return SafeClient(channels=channels), source


@dataclass(frozen=True, slots=True)
class SvidAuthority:
    key: ec.EllipticCurvePrivateKey
    cert: x509.Certificate

    @property
    def bundle_pem(self) -> bytes:
        return self.cert.public_bytes(serialization.Encoding.PEM)


def _key_usage(*, ca: bool) -> x509.KeyUsage:
    return x509.KeyUsage(
        digital_signature=True,
        content_commitment=False,
        key_encipherment=False,
        data_encipherment=False,
        key_agreement=False,
        key_cert_sign=ca,
        crl_sign=ca,
        encipher_only=False,
        decipher_only=False,
    )


def make_ca() -> SvidAuthority:
    now = datetime.now(tz=UTC)
    key = ec.generate_private_key(ec.SECP256R1())
    name = x509.Name([x509.NameAttribute(NameOID.ORGANIZATION_NAME, "SPIRE")])
    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - timedelta(minutes=1))
        .not_valid_after(now + timedelta(hours=1))
        .add_extension(x509.BasicConstraints(ca=True, path_length=None), critical=True)
        .add_extension(_key_usage(ca=True), critical=True)
        .add_extension(x509.SubjectKeyIdentifier.from_public_key(key.public_key()), critical=False)
        .sign(key, hashes.SHA256())
    )
    return SvidAuthority(key=key, cert=cert)


def make_svid(
    spiffe_id: str | None, ca: SvidAuthority | None = None
) -> tuple[bytes, bytes, bytes]:
    """
    Returns (leaf chain PEM, leaf key PEM, CA bundle PEM). A fresh CA is minted unless one
    is passed in; SVIDs that must trust each other share a CA.
    """

    ca = ca or make_ca()
    now = datetime.now(tz=UTC)
    leaf_key = ec.generate_private_key(ec.SECP256R1())
    builder = (
        x509.CertificateBuilder()
        .subject_name(x509.Name([x509.NameAttribute(NameOID.ORGANIZATION_NAME, "workload")]))
        .issuer_name(ca.cert.subject)
        .public_key(leaf_key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - timedelta(minutes=1))
        .not_valid_after(now + timedelta(hours=1))
        .add_extension(x509.BasicConstraints(ca=False, path_length=None), critical=True)
        .add_extension(_key_usage(ca=False), critical=True)
        .add_extension(
            x509.ExtendedKeyUsage(
                [ExtendedKeyUsageOID.SERVER_AUTH, ExtendedKeyUsageOID.CLIENT_AUTH]
            ),
            critical=False,
        )
        .add_extension(
            x509.SubjectKeyIdentifier.from_public_key(leaf_key.public_key()), critical=False
        )
        .add_extension(
            x509.AuthorityKeyIdentifier.from_issuer_public_key(ca.key.public_key()),
            critical=False,
        )
    )
    if spiffe_id is not None:
        builder = builder.add_extension(
            x509.SubjectAlternativeName([x509.UniformResourceIdentifier(spiffe_id)]),
            critical=False,
        )
    leaf_cert = builder.sign(ca.key, hashes.SHA256())

    return (
        leaf_cert.public_bytes(serialization.Encoding.PEM),
        leaf_key.private_bytes(
            serialization.Encoding.PEM,
            serialization.PrivateFormat.PKCS8,
            serialization.NoEncryption(),
        ),
        ca.bundle_pem,
    )



class FakeTime:
    """
    Injectable clock + sleep; sleeping advances the clock instantly.
    """

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def clock(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


# --- Module Notes -----------------------------------------------------------
# Kept out of conftest.py so test modules can import these directly.
