from .crypto import init_crypto, registered_digests
from .configloader import SignerConfig, ConfigError, load_config
from .serials import RandomSerial, CounterSerial, FixedSerial
from .exceptions import (
    SigningError,
    InputError,
    ParseError,
    InvalidSignatureError,
    BuildError,
    SignError,
    EncodeError,
)
from .pipeline import sign_certificate_request

__version__ = "1.0.0"
