import threading

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.backends import default_backend as x509_backend

from .logging_config import get_logger

logger = get_logger(__name__)

# candidates for signing digests; only those the linked OpenSSL supports get
# registered by init_crypto().
DIGEST_CANDIDATES = {
    "sha224": hashes.SHA224,
    "sha256": hashes.SHA256,
    "sha384": hashes.SHA384,
    "sha512": hashes.SHA512,
    "sha3-256": hashes.SHA3_256,
    "sha3-384": hashes.SHA3_384,
    "sha3-512": hashes.SHA3_512,
}

_lock = threading.Lock()
_digests = None


def init_crypto():
    """ one-time, process wide registration of the signing algorithms

    Safe to call any number of times and from any number of threads: the
    registry is populated exactly once, later calls are no-ops.

    Returns:
        bool: True if this call did the registration, False otherwise.
    """
    global _digests

    if _digests is not None:
        return False

    with _lock:
        if _digests is not None:  # somebody else won the race
            return False

        backend = x509_backend()
        registry = {
            name: cls
            for name, cls in DIGEST_CANDIDATES.items()
            if backend.hash_supported(cls())
        }
        logger.info(
            "crypto initialized",
            openssl=backend.openssl_version_text(),
            digests=sorted(registry),
        )
        _digests = registry
        return True


def is_initialized():
    return _digests is not None


def registered_digests():
    """
    Returns:
        list: names of the digests usable for signing, sorted.
    """
    init_crypto()
    return sorted(_digests)


def get_digest(name):
    """ look up a signing digest by name

    Args:
        name (str): case-insensitive digest name, e.g. "sha256".

    Returns:
        cryptography.hazmat.primitives.hashes.HashAlgorithm: a fresh instance.

    Raises:
        KeyError: the digest is unknown or not supported by the backend.
    """
    init_crypto()
    return _digests[name.lower()]()
