class SigningError(Exception):
    """
    Base class for everything that can go wrong while turning a CSR into a
    certificate. The pipeline never returns a partial result; it raises one
    of the subclasses below instead.

    Args:
        message (str): human readable diagnostic, meant for operators.
        kind (str): short machine readable token identifying the stage.
    """

    kind = "signing"

    def __init__(self, message, kind=None):
        super().__init__(message)
        self.message = message
        if kind is not None:
            self.kind = kind


class InputError(SigningError):
    """ an argument is missing, empty or of the wrong type """

    kind = "input"


class ParseError(SigningError):
    """
    A buffer is not PEM, or does not contain the expected kind of object.

    Args:
        message (str): diagnostic.
        object_kind (str): which input failed to parse ("private key",
            "certificate" or "certificate request").
    """

    kind = "parse"

    def __init__(self, message, object_kind=None):
        super().__init__(message)
        self.object_kind = object_kind


class InvalidSignatureError(SigningError):
    """ the CSR's self-signature does not verify against its own key """

    kind = "invalid_signature"


class BuildError(SigningError):
    """
    A field of the new certificate could not be set.

    Args:
        message (str): diagnostic.
        field (str): the field that was being set, e.g. "serial_number".
    """

    kind = "build"

    def __init__(self, message, field=None):
        super().__init__(message)
        self.field = field


class SignError(SigningError):
    kind = "sign"


class EncodeError(SigningError):
    kind = "encode"
