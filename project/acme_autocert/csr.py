"""Key, CSR and certificate helpers backed by `cryptography`.

Everything here accepts and returns PEM encoded bytes, so the rest of the
client never needs to know which engine produced a key or CSR.
"""
import re
from base64 import b64decode
from dataclasses import dataclass
from dataclasses import field
from datetime import datetime
from typing import Optional
from typing import Union

from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.utils import int_to_bytes
from cryptography.x509.oid import NameOID

from acme_autocert.jws import PrivateKey

PemInput = Union[bytes, str]

_PEM_BOUNDARY = re.compile(r"\s*-----(?:BEGIN|END) [A-Z0-9- ]+-----")

_CURVES = {
    "P-256": ec.SECP256R1,
    "P-384": ec.SECP384R1,
    "P-521": ec.SECP521R1,
}


@dataclass(frozen=True)
class CsrDomains:
    common_name: Optional[str]
    alt_names: list[str] = field(default_factory=list)

    @property
    def identifiers(self) -> list[str]:
        """Common name first, followed by the alt names, without duplicates."""
        domains = [self.common_name] if self.common_name else []
        for name in self.alt_names:
            if name not in domains:
                domains.append(name)
        return domains


@dataclass(frozen=True)
class CertificateInfo:
    domains: CsrDomains
    issuer: dict[str, Optional[str]]
    not_before: datetime
    not_after: datetime


def _to_bytes(data: PemInput) -> bytes:
    return data.encode("ASCII") if isinstance(data, str) else data


def load_private_key(key: Union[PemInput, PrivateKey]) -> PrivateKey:
    if isinstance(key, (rsa.RSAPrivateKey, ec.EllipticCurvePrivateKey)):
        return key
    return serialization.load_pem_private_key(_to_bytes(key), password=None)  # type: ignore


def _private_bytes(key: PrivateKey) -> bytes:
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.TraditionalOpenSSL,
        encryption_algorithm=serialization.NoEncryption(),
    )


def create_private_key(size: int = 2048) -> bytes:
    """Generate a PEM encoded RSA private key."""
    return _private_bytes(rsa.generate_private_key(public_exponent=65537, key_size=size))


def create_ec_private_key(curve: str = "P-256") -> bytes:
    """Generate a PEM encoded EC private key on the named curve."""
    if curve not in _CURVES:
        raise ValueError(f"Unsupported curve: {curve}")
    return _private_bytes(ec.generate_private_key(_CURVES[curve]()))


def create_public_key(key: Union[PemInput, PrivateKey]) -> bytes:
    return (
        load_private_key(key)
        .public_key()
        .public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        )
    )


def _rsa_public_numbers(key: Union[PemInput, PrivateKey]) -> rsa.RSAPublicNumbers:
    public_key = load_private_key(key).public_key()
    if not isinstance(public_key, rsa.RSAPublicKey):
        raise ValueError("Modulus and exponent are only defined for RSA keys")
    return public_key.public_numbers()


def get_modulus(key: Union[PemInput, PrivateKey]) -> bytes:
    return int_to_bytes(_rsa_public_numbers(key).n)


def get_public_exponent(key: Union[PemInput, PrivateKey]) -> bytes:
    return int_to_bytes(_rsa_public_numbers(key).e)


def create_csr(
    common_name: Optional[str] = None,
    alt_names: Optional[list[str]] = None,
    key: Optional[Union[PemInput, PrivateKey]] = None,
    key_size: int = 2048,
    country: Optional[str] = None,
    state: Optional[str] = None,
    locality: Optional[str] = None,
    organization: Optional[str] = None,
    organization_unit: Optional[str] = None,
    email_address: Optional[str] = None,
) -> tuple[bytes, bytes]:
    """Create a CSR for the given names. Return the PEM encoded private key
    and CSR.

    Parameters
    ----------
    common_name : str, optional
        The subject common name. Defaults to the first alt name.
    alt_names : list[str], optional
        The subjectAltNames. The common name is always included.
    key : optional
        The certificate key. A fresh RSA key of `key_size` bits is generated
        when omitted. As per RFC 8555 Section 11.1 this MUST NOT be the
        account key.

    Returns
    -------
    tuple[bytes, bytes]
        The PEM encoded private key and the PEM encoded CSR.

    Raises
    ------
    ValueError
        When neither a common name nor any alt names were given.
    """
    alt_names = list(alt_names or [])
    if common_name is None and len(alt_names) == 0:
        raise ValueError("A CSR needs at least a common name or one alt name")
    if common_name is None:
        common_name = alt_names[0]
    if common_name not in alt_names:
        alt_names.insert(0, common_name)

    private_key = load_private_key(key if key is not None else create_private_key(key_size))

    subject = [
        (NameOID.COUNTRY_NAME, country),
        (NameOID.STATE_OR_PROVINCE_NAME, state),
        (NameOID.LOCALITY_NAME, locality),
        (NameOID.ORGANIZATION_NAME, organization),
        (NameOID.ORGANIZATIONAL_UNIT_NAME, organization_unit),
        (NameOID.EMAIL_ADDRESS, email_address),
        (NameOID.COMMON_NAME, common_name),
    ]
    csr_builder = (
        x509.CertificateSigningRequestBuilder()
        .subject_name(
            x509.Name([x509.NameAttribute(oid, value) for oid, value in subject if value])
        )
        .add_extension(
            x509.SubjectAlternativeName(list(map(x509.DNSName, alt_names))),
            critical=False,
        )
    )
    csr = csr_builder.sign(private_key, hashes.SHA256())
    return (
        _private_bytes(private_key),
        csr.public_bytes(encoding=serialization.Encoding.PEM),
    )


def _common_name(name: x509.Name) -> Optional[str]:
    attributes = name.get_attributes_for_oid(NameOID.COMMON_NAME)
    return str(attributes[0].value) if attributes else None


def _alt_names(extensions: x509.Extensions) -> list[str]:
    try:
        san = extensions.get_extension_for_class(x509.SubjectAlternativeName)
    except x509.ExtensionNotFound:
        return []
    return san.value.get_values_for_type(x509.DNSName)


def read_csr_domains(csr: PemInput) -> CsrDomains:
    request = x509.load_pem_x509_csr(_to_bytes(csr))
    return CsrDomains(
        common_name=_common_name(request.subject),
        alt_names=_alt_names(request.extensions),
    )


def read_certificate_info(cert: PemInput) -> CertificateInfo:
    """Parse the first certificate of a PEM chain."""
    certificate = x509.load_pem_x509_certificate(_to_bytes(split_pem_chain(cert)[0]))
    return CertificateInfo(
        domains=CsrDomains(
            common_name=_common_name(certificate.subject),
            alt_names=_alt_names(certificate.extensions),
        ),
        issuer={"common_name": _common_name(certificate.issuer)},
        not_before=certificate.not_valid_before_utc,
        not_after=certificate.not_valid_after_utc,
    )


def split_pem_chain(data: PemInput) -> list[str]:
    """Split a chain of PEM objects into a list of complete PEM strings."""
    text = data.decode("ASCII") if isinstance(data, bytes) else data
    return [
        match.group(0).strip() + "\n"
        for match in re.finditer(
            r"-----BEGIN ([A-Z0-9 ]+)-----.*?-----END \1-----", text, re.DOTALL
        )
    ]


def get_pem_body(data: PemInput) -> bytes:
    """Return the DER bytes of the first PEM object in `data`.

    Raises
    ------
    ValueError
        When no PEM object could be found.
    """
    text = data.decode("ASCII") if isinstance(data, bytes) else data
    bodies = [
        re.sub(r"\s", "", part) for part in _PEM_BOUNDARY.split(text) if part.strip()
    ]
    if len(bodies) == 0:
        raise ValueError("Unable to parse PEM body from string")
    return b64decode(bodies[0])
