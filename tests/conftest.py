"""
Shared fixtures: on-the-fly test certificates and an in-memory platform.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Dict, List, Optional, Sequence

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID

from cert_updater.remote import (
    CertificatePlatform,
    CreateCertificateResponse,
    InventoryPage,
    RemoteCertificateRecord,
)


NOW = datetime.now(timezone.utc).replace(microsecond=0)


def _key_pem(key) -> bytes:
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )


def _cert_pem(cert: x509.Certificate) -> bytes:
    return cert.public_bytes(serialization.Encoding.PEM)


@dataclass
class CertificateMaterial:
    """PEM material as certbot would leave it."""
    cert: bytes
    chain: bytes
    fullchain: bytes
    privkey: bytes


def make_certificate(
    dns_names: Sequence[str] = ("example.org", "www.example.org"),
    not_before: Optional[datetime] = None,
    not_after: Optional[datetime] = None,
    common_name: Optional[str] = None,
    with_san: bool = True,
) -> CertificateMaterial:
    """Issue a leaf certificate from a throwaway intermediate."""
    not_before = not_before or NOW - timedelta(days=1)
    not_after = not_after or NOW + timedelta(days=90)

    ca_key = ec.generate_private_key(ec.SECP256R1())
    ca_name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "Test Intermediate CA")])
    ca_cert = (
        x509.CertificateBuilder()
        .subject_name(ca_name)
        .issuer_name(ca_name)
        .public_key(ca_key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(NOW - timedelta(days=365))
        .not_valid_after(NOW + timedelta(days=365))
        .add_extension(x509.BasicConstraints(ca=True, path_length=0), critical=True)
        .sign(ca_key, hashes.SHA256())
    )

    leaf_key = ec.generate_private_key(ec.SECP256R1())
    subject_cn = common_name or (dns_names[0] if dns_names else "example.org")
    builder = (
        x509.CertificateBuilder()
        .subject_name(x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, subject_cn)]))
        .issuer_name(ca_name)
        .public_key(leaf_key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(not_before)
        .not_valid_after(not_after)
    )
    if with_san:
        builder = builder.add_extension(
            x509.SubjectAlternativeName([x509.DNSName(name) for name in dns_names]),
            critical=False,
        )
    leaf_cert = builder.sign(ca_key, hashes.SHA256())

    cert = _cert_pem(leaf_cert)
    chain = _cert_pem(ca_cert)
    return CertificateMaterial(
        cert=cert,
        chain=chain,
        fullchain=cert + chain,
        privkey=_key_pem(leaf_key),
    )


def make_private_key() -> bytes:
    return _key_pem(ec.generate_private_key(ec.SECP256R1()))


def write_certbot_layout(directory: Path, material: CertificateMaterial) -> Path:
    """Write PEM files and a renewal config the way certbot lays them out."""
    live = directory / "live"
    live.mkdir(parents=True, exist_ok=True)
    (live / "cert.pem").write_bytes(material.cert)
    (live / "chain.pem").write_bytes(material.chain)
    (live / "fullchain.pem").write_bytes(material.fullchain)
    (live / "privkey.pem").write_bytes(material.privkey)

    conf = directory / "example.org.conf"
    conf.write_text(
        "# renew_before_expiry = 30 days\n"
        "version = 2.11.0\n"
        f"archive_dir = {directory / 'archive'}\n"
        f"cert = {live / 'cert.pem'}\n"
        f"privkey = {live / 'privkey.pem'}\n"
        f"chain = {live / 'chain.pem'}\n"
        f"fullchain = {live / 'fullchain.pem'}\n"
        "\n"
        "# Options used in the renewal process\n"
        "[renewalparams]\n"
        "authenticator = webroot\n"
        "server = https://acme-v02.api.letsencrypt.org/directory\n"
    )
    return conf


class FakePlatform(CertificatePlatform):
    """In-memory platform that records every call in order."""

    inventory_url = "/tls/certificates"

    def __init__(
        self,
        pages: Optional[List[InventoryPage]] = None,
        key_error: Optional[Exception] = None,
        certificate_status: int = 201,
        certificate_error: Optional[Exception] = None,
        delete_error: Optional[Exception] = None,
        list_error: Optional[Exception] = None,
    ):
        self.pages: Dict[str, InventoryPage] = {}
        self.calls: List[tuple] = []
        self.key_error = key_error
        self.certificate_status = certificate_status
        self.certificate_error = certificate_error
        self.delete_error = delete_error
        self.list_error = list_error

        pages = pages if pages is not None else [InventoryPage()]
        for index, page in enumerate(pages):
            url = self.inventory_url if index == 0 else f"{self.inventory_url}?page[number]={index + 1}"
            self.pages[url] = page

    def list_certificates(self, page_url: str) -> InventoryPage:
        self.calls.append(("list", page_url))
        if self.list_error:
            raise self.list_error
        return self.pages[page_url]

    def create_private_key(self, name: str, key_pem: bytes) -> str:
        self.calls.append(("create_private_key", name))
        if self.key_error:
            raise self.key_error
        return "key-new"

    def create_certificate(self, name, cert_blob, intermediates_blob) -> CreateCertificateResponse:
        self.calls.append(("create_certificate", name))
        if self.certificate_error:
            raise self.certificate_error
        return CreateCertificateResponse(
            status_code=self.certificate_status,
            reason=str(self.certificate_status),
            certificate_id="cert-new" if self.certificate_status == 201 else None,
        )

    def delete_certificate(self, certificate_id: str) -> None:
        self.calls.append(("delete_certificate", certificate_id))
        if self.delete_error:
            raise self.delete_error

    @property
    def call_names(self) -> List[str]:
        return [call[0] for call in self.calls]


def make_pages(*page_records: List[RemoteCertificateRecord]) -> List[InventoryPage]:
    """Chain record lists into pages linked the way FakePlatform addresses them."""
    pages = []
    for index, records in enumerate(page_records):
        is_last = index == len(page_records) - 1
        next_url = None if is_last else f"/tls/certificates?page[number]={index + 2}"
        pages.append(InventoryPage(records=list(records), next_page_url=next_url))
    return pages


def make_record(cert_id: str, *domains: str, not_after: Optional[datetime] = None) -> RemoteCertificateRecord:
    return RemoteCertificateRecord(
        id=cert_id,
        domains=frozenset(domains),
        not_after=not_after or NOW + timedelta(days=60),
    )


@pytest.fixture(scope="session")
def valid_material() -> CertificateMaterial:
    return make_certificate()


@pytest.fixture
def renewal_conf(tmp_path, valid_material) -> Path:
    return write_certbot_layout(tmp_path, valid_material)
