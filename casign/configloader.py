from configparser import ConfigParser
from datetime import date, timedelta

from .crypto import DIGEST_CANDIDATES
from .serials import POLICIES, RandomSerial, CounterSerial, FixedSerial

DEFAULT_VALIDITY_DAYS = 365
DEFAULT_DIGEST = "sha256"


class ConfigError(Exception):
    """
        This exception is raised when an error occurred while reading the
        config.
    """

    pass


def validity_in_range(validity_days):
    """ whether a certificate issued today would expire by 9999-12-31

    RFC 5280 §4.1.2.5 has no way to express later dates, and neither does
    Python's ``datetime``.

    Args:
        validity_days (int): requested validity period.

    Returns:
        bool: True if notAfter stays representable.
    """
    try:
        date.today() + timedelta(days=validity_days)
    except OverflowError:
        return False
    return True


class SignerConfig:
    """ tunables of the signing pipeline

    Args:
        validity_days (int): days between notBefore and notAfter.
        digest (str): name of the signing digest, see
            ``crypto.registered_digests()``.
        serial_policy: object with a ``next_serial()`` method; defaults to
            a ``RandomSerial``.
        verify_ca_key (bool): refuse to sign when the CA key does not belong
            to the CA certificate.

    Raises:
        ValueError: validity_days is not a positive integer or would push
            notAfter past the year 9999.
        TypeError: digest is not a string.
    """

    def __init__(
        self,
        validity_days=DEFAULT_VALIDITY_DAYS,
        digest=DEFAULT_DIGEST,
        serial_policy=None,
        verify_ca_key=True,
    ):
        if type(validity_days) != int or validity_days <= 0:
            raise ValueError("validity_days must be a positive integer")
        if not validity_in_range(validity_days):
            raise ValueError("validity_days reaches beyond the year 9999")
        if type(digest) != str:
            raise TypeError("digest must be a string")
        self.validity_days = validity_days
        self.digest = digest
        self.serial_policy = serial_policy or RandomSerial()
        self.verify_ca_key = verify_ca_key

    def __repr__(self):
        return (
            f"SignerConfig(validity_days={self.validity_days}, "
            f"digest={self.digest!r}, serial_policy={self.serial_policy.name!r}, "
            f"verify_ca_key={self.verify_ca_key})"
        )


def _parse_int(section, key, fallback=None):
    value = section.get(key, fallback)
    if value is None:
        raise ConfigError(f"no [casign]{key}= configured") from None
    try:
        return int(str(value), 0)
    except ValueError:
        raise ConfigError(f"[casign]{key}= must be an integer") from None


def _parse_positive_int(section, key, fallback=None):
    value = _parse_int(section, key, fallback)
    if value <= 0:
        raise ConfigError(f"[casign]{key}= must be positive") from None
    return value


def _parse_bool(section, key, fallback):
    """ ``getboolean()`` for real config sections, by hand for plain dicts

    The backend accepts a dict of sections as well (like serles' backends do),
    and dicts have no ``getboolean()``.
    """
    if hasattr(section, "getboolean"):
        try:
            return section.getboolean(key, fallback=fallback)
        except ValueError:
            raise ConfigError(f"[casign]{key}= must be 'true' or 'false'") from None

    value = section.get(key)
    if value is None:
        return fallback
    if type(value) == bool:
        return value
    value = str(value).strip().lower()
    if value in ("1", "yes", "true", "on"):
        return True
    if value in ("0", "no", "false", "off"):
        return False
    raise ConfigError(f"[casign]{key}= must be 'true' or 'false'") from None


def signer_config_from_section(section):
    """
    Builds a ``SignerConfig`` from the ``[casign]`` section of a config
    file, or any dict-like with the same keys.

    Args:
        section: mapping of option names to (string) values.

    Returns:
        SignerConfig: the parsed settings; missing keys get their defaults.

    Raises:
        ConfigError: an option has an invalid value.
    """
    validity_days = _parse_positive_int(section, "validityDays", DEFAULT_VALIDITY_DAYS)
    if not validity_in_range(validity_days):
        raise ConfigError(
            "[casign]validityDays= reaches beyond the year 9999"
        ) from None

    digest = section.get("digest", DEFAULT_DIGEST).strip().lower()
    if digest not in DIGEST_CANDIDATES:
        raise ConfigError(
            f"[casign]digest= must be one of {', '.join(DIGEST_CANDIDATES)}"
        ) from None

    policy = section.get("serialPolicy", RandomSerial.name).strip().lower()
    if policy not in POLICIES:
        raise ConfigError(
            f"[casign]serialPolicy= must be one of {', '.join(POLICIES)}"
        ) from None
    if policy == CounterSerial.name:
        serial_policy = CounterSerial(_parse_positive_int(section, "serialStart", 1))
    elif policy == FixedSerial.name:
        serial_policy = FixedSerial(_parse_positive_int(section, "serialNumber"))
    else:
        serial_policy = RandomSerial()

    verify_ca_key = _parse_bool(section, "verifyCaKey", True)

    return SignerConfig(
        validity_days=validity_days,
        digest=digest,
        serial_policy=serial_policy,
        verify_ca_key=verify_ca_key,
    )


def load_config(filename):
    """
    Parses the config file given, or raises an exception. Called by the
    command line tool before touching any key material, so that typos are
    reported before anything is signed.

    Args:
        filename: config file to load.

    Returns:
        (SignerConfig, configparser.ConfigParser): A tuple containing the
        signer settings and the parsed config (dict-like), the latter for
        the file paths in ``[casign]``.

    Raises:
        ConfigError: The config could not be loaded, has no ``[casign]``
            section or contains an invalid value.
    """
    cparser = ConfigParser()
    if not cparser.read(filename):
        raise ConfigError("unable to load config file") from None

    try:
        section = cparser["casign"]
    except KeyError:
        raise ConfigError("config file has no [casign] section") from None

    return signer_config_from_section(section), cparser
