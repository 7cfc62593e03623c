from enum import Enum

from cryptography import x509  # python3-cryptography.x86_64
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec, rsa

from .exceptions import ParseError, EncodeError


class ObjectKind(Enum):
    """ the three kinds of PEM input the pipeline understands """

    private_key = "private key"
    certificate = "certificate"
    certificate_request = "certificate request"


# accepted armor labels per kind (RFC 7468 plus the legacy OpenSSL ones)
PEM_LABELS = {
    ObjectKind.private_key: (
        b"PRIVATE KEY",
        b"ENCRYPTED PRIVATE KEY",
        b"RSA PRIVATE KEY",
        b"EC PRIVATE KEY",
    ),
    ObjectKind.certificate: (b"CERTIFICATE", b"X509 CERTIFICATE"),
    ObjectKind.certificate_request: (
        b"CERTIFICATE REQUEST",
        b"NEW CERTIFICATE REQUEST",
    ),
}

SIGNING_KEY_TYPES = (rsa.RSAPrivateKey, ec.EllipticCurvePrivateKey)


def _has_armor(buffer, kind):
    return any(
        b"-----BEGIN " + label + b"-----" in buffer for label in PEM_LABELS[kind]
    )


def decode(buffer, kind, password=None):
    """ parse one PEM-armored object

    Args:
        buffer (bytes): the PEM input.
        kind (ObjectKind): what the buffer is expected to contain.
        password (bytes): passphrase for an encrypted private key, or None.
            Ignored for certificates and requests.

    Returns:
        the parsed ``RSAPrivateKey``/``EllipticCurvePrivateKey``,
        ``x509.Certificate`` or ``x509.CertificateSigningRequest``.

    Raises:
        ParseError: empty buffer, missing or wrong armor, malformed content,
            wrong passphrase, or an unsupported key type.
    """
    what = kind.value
    if not buffer:
        raise ParseError(f"{what} is empty", what)
    if not _has_armor(buffer, kind):
        raise ParseError(f"{what} is not PEM armored as a {what}", what)

    try:
        if kind is ObjectKind.private_key:
            obj = serialization.load_pem_private_key(buffer, password=password)
        elif kind is ObjectKind.certificate:
            obj = x509.load_pem_x509_certificate(buffer)
        else:
            obj = x509.load_pem_x509_csr(buffer)
    except TypeError as e:
        # raised by cryptography for a missing or superfluous passphrase
        raise ParseError(f"can't decrypt {what}: {e}", what) from e
    except (ValueError, UnsupportedAlgorithm) as e:
        raise ParseError(f"can't read {what}: {e}", what) from e

    if kind is ObjectKind.private_key and not isinstance(obj, SIGNING_KEY_TYPES):
        raise ParseError(
            f"{what} must be RSA or EC, got {type(obj).__name__}", what
        )

    return obj


def encode(cert):
    """ serialize a signed certificate to PEM

    Args:
        cert (x509.Certificate): the signed certificate.

    Returns:
        bytes: exactly one PEM block, nothing appended.

    Raises:
        EncodeError: serialization failed.
    """
    try:
        pem = cert.public_bytes(serialization.Encoding.PEM)
    except (ValueError, TypeError) as e:
        raise EncodeError(f"can't encode certificate: {e}") from e

    if not pem.startswith(b"-----BEGIN CERTIFICATE-----"):
        raise EncodeError("encoder produced no certificate block")
    return pem
