# the serles-acme backend contract: sign(PEM_CSR, DN, [SAN], email) -> (PEM_chain, error_or_None).
from abc import ABC, abstractmethod


class Backend(ABC):
    """ common parent of casign's issuing backends

    ``__init__()`` receives the whole parsed config file (any mapping of
    sections works) and keeps it as ``self.config``. ``sign()`` must never
    raise for a rejected request; it reports the reason as the second
    element of its return value instead, which an ACME server forwards to
    the client as a badCSR error.
    """

    def __init__(self, config):
        self.config = config

    @abstractmethod
    def sign(self, csr, subjectDN, subjectAltNames, email):
        pass
