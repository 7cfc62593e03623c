""" CSR to certificate signing pipeline

decode -> verify_request -> build_certificate -> sign_certificate -> encode

Every stage raises a ``SigningError`` subclass and nothing is retried. All
objects live in the frame of ``sign_certificate_request()`` and are dropped
when it returns or raises; there is no module level cache of keys or
certificates.
"""
from datetime import datetime, timezone, timedelta

from cryptography import x509  # python3-cryptography.x86_64
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization

from . import pem
from .crypto import init_crypto, get_digest
from .configloader import SignerConfig
from .exceptions import (
    SigningError,
    InputError,
    InvalidSignatureError,
    BuildError,
    SignError,
)
from .logging_config import get_logger

logger = get_logger(__name__)


def verify_request(csr):
    """ check the CSR's self-signature

    This only proves that the request was not corrupted and that its author
    holds the private half of the embedded key. It says nothing about
    whether the requester should be trusted.

    Args:
        csr (x509.CertificateSigningRequest): parsed request.

    Raises:
        InvalidSignatureError: the signature does not verify.
    """
    try:
        valid = csr.is_signature_valid
    except (UnsupportedAlgorithm, ValueError) as e:
        raise InvalidSignatureError(f"can't verify CSR signature: {e}") from e
    if not valid:
        raise InvalidSignatureError("CSR signature does not match its public key")


def _set(builder, field, setter, value):
    try:
        return setter(builder, value)
    except (ValueError, TypeError) as e:
        raise BuildError(f"can't set {field}: {e}", field) from e


def build_certificate(csr, ca_cert, config, now=None):
    """ assemble the unsigned certificate

    Args:
        csr (x509.CertificateSigningRequest): source of subject and key.
        ca_cert (x509.Certificate): source of the issuer name.
        config (SignerConfig): validity period and serial policy.
        now (datetime): start of the validity window, defaults to the
            current time. Sub-second precision is dropped since X.509 times
            can't represent it.

    Returns:
        x509.CertificateBuilder: ready to be signed.

    Raises:
        BuildError: one of the fields could not be set; ``.field`` says which.
    """
    if now is None:
        now = datetime.now(timezone.utc)
    not_before = now.replace(microsecond=0)
    try:
        not_after = not_before + timedelta(days=config.validity_days)
    except OverflowError as e:
        raise BuildError(f"can't set not_valid_after: {e}", "not_valid_after") from e

    # CertificateBuilder only produces X.509 v3; checked again after signing.
    builder = x509.CertificateBuilder()

    try:
        public_key = csr.public_key()
    except (ValueError, UnsupportedAlgorithm) as e:
        raise BuildError(f"can't extract public key from CSR: {e}", "public_key") from e
    builder = _set(builder, "public_key", x509.CertificateBuilder.public_key, public_key)

    try:
        serial = config.serial_policy.next_serial()
    except Exception as e:
        raise BuildError(f"serial policy failed: {e}", "serial_number") from e
    builder = _set(
        builder, "serial_number", x509.CertificateBuilder.serial_number, serial
    )

    builder = _set(builder, "subject", x509.CertificateBuilder.subject_name, csr.subject)
    builder = _set(builder, "issuer", x509.CertificateBuilder.issuer_name, ca_cert.subject)
    builder = _set(
        builder, "not_valid_before", x509.CertificateBuilder.not_valid_before, not_before
    )
    builder = _set(
        builder, "not_valid_after", x509.CertificateBuilder.not_valid_after, not_after
    )

    return builder


def _spki(key):
    return key.public_bytes(
        serialization.Encoding.DER, serialization.PublicFormat.SubjectPublicKeyInfo
    )


def sign_certificate(builder, ca_key, ca_cert, digest="sha256", verify_ca_key=True):
    """ sign the assembled certificate with the CA key

    Args:
        builder (x509.CertificateBuilder): output of ``build_certificate()``.
        ca_key: the CA's RSA or EC private key.
        ca_cert (x509.Certificate): the CA's certificate.
        digest (str): name of a registered digest.
        verify_ca_key (bool): make sure ``ca_key`` belongs to ``ca_cert``
            first, so we don't hand out certificates nobody can validate.

    Returns:
        x509.Certificate: the signed certificate.

    Raises:
        SignError: unknown digest, mismatching CA key, or signing failed.
        BuildError: the result is not an X.509 v3 certificate.
    """
    try:
        algorithm = get_digest(digest)
    except (KeyError, AttributeError):
        raise SignError(f"digest {digest!r} is not available") from None

    if verify_ca_key and _spki(ca_key.public_key()) != _spki(ca_cert.public_key()):
        raise SignError("CA private key does not belong to the CA certificate")

    try:
        cert = builder.sign(ca_key, algorithm)
    except (ValueError, TypeError, UnsupportedAlgorithm) as e:
        raise SignError(f"can't sign certificate: {e}") from e

    if cert.version != x509.Version.v3:
        raise BuildError(f"certificate version is {cert.version.name}", "version")
    return cert


def _check_input(value, what):
    if type(value) == str:
        try:
            value = value.encode("ascii")
        except UnicodeEncodeError:
            raise InputError(f"{what} must be ASCII PEM text") from None
    if type(value) not in (bytes, bytearray, memoryview):
        raise InputError(f"{what} must be bytes, got {type(value).__name__}")
    value = bytes(value)
    if not value:
        raise InputError(f"{what} must not be empty")
    return value


def sign_certificate_request(
    private_key_pem, ca_certificate_pem, csr_pem, passphrase=None, config=None
):
    """ issue a certificate for a CSR

    The new certificate gets the CSR's subject and public key, the CA
    certificate's subject as issuer, a serial from the configured policy and
    a validity window starting now. No extensions are added.

    Args:
        private_key_pem (bytes): the CA private key, PEM.
        ca_certificate_pem (bytes): the CA certificate, PEM.
        csr_pem (bytes): the certificate request, PEM.
        passphrase (bytes): decrypts ``private_key_pem``; None if it is not
            encrypted.
        config (SignerConfig): settings, defaults to ``SignerConfig()``.

    Returns:
        bytes: the signed certificate as a single PEM block.

    Raises:
        InputError, ParseError, InvalidSignatureError, BuildError, SignError,
        EncodeError: see ``casign.exceptions``.
    """
    try:
        private_key_pem = _check_input(private_key_pem, "private key")
        ca_certificate_pem = _check_input(ca_certificate_pem, "CA certificate")
        csr_pem = _check_input(csr_pem, "certificate request")
        if type(passphrase) == str:
            passphrase = passphrase.encode("utf-8")
        if config is None:
            config = SignerConfig()

        init_crypto()

        ca_key = pem.decode(private_key_pem, pem.ObjectKind.private_key, passphrase)
        ca_cert = pem.decode(ca_certificate_pem, pem.ObjectKind.certificate)
        csr = pem.decode(csr_pem, pem.ObjectKind.certificate_request)
        logger.debug("inputs decoded", subject=csr.subject.rfc4514_string())

        verify_request(csr)
        logger.debug("request signature verified")

        builder = build_certificate(csr, ca_cert, config)
        logger.debug("certificate built", digest=config.digest)
        cert = sign_certificate(
            builder, ca_key, ca_cert, config.digest, config.verify_ca_key
        )
        result = pem.encode(cert)
    except SigningError as e:
        logger.error("certificate not issued", kind=e.kind, error=e.message)
        raise

    logger.info(
        "certificate issued",
        subject=cert.subject.rfc4514_string(),
        issuer=cert.issuer.rfc4514_string(),
        serial=cert.serial_number,
        not_after=cert.not_valid_after_utc.isoformat(),
    )
    return result
