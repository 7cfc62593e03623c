from ..configloader import signer_config_from_section
from ..exceptions import SigningError
from ..pipeline import sign_certificate_request
from .base import Backend as BaseBackend


class Backend(BaseBackend):
    """ in-process CA backend

    Signs requests with a CA key and certificate kept in files, without
    shelling out to openssl. Configured in the ``[casign]`` section:

    - ``cakey``: path to the CA private key (PEM)
    - ``cacert``: path to the CA certificate (PEM)
    - ``passphrase``: optional, decrypts ``cakey``
    - the signer options understood by ``signer_config_from_section()``

    The key material is read once, here; ``sign()`` only works on memory.
    """

    def __init__(self, config):
        super().__init__(config)
        try:
            section = config["casign"]
            cakey = section["cakey"]
            cacert = section["cacert"]
        except KeyError as e:
            raise Exception(f"missing config key {e}")

        with open(cakey, "rb") as f:
            self.cakey = f.read()
        with open(cacert, "rb") as f:
            self.cacert = f.read()

        passphrase = section.get("passphrase")
        self.passphrase = passphrase.encode("utf-8") if passphrase else None
        self.signer_config = signer_config_from_section(section)

    def sign(self, csr, subjectDN, subjectAltNames, email):
        # subjectDN, subjectAltNames and email are ignored: the subject
        # always comes from the CSR and no extensions are written.
        try:
            certificate = sign_certificate_request(
                self.cakey,
                self.cacert,
                csr,
                passphrase=self.passphrase,
                config=self.signer_config,
            )
        except SigningError as e:
            return None, f"{e.kind}: {e.message}"
        chain = certificate + self.cacert
        return chain.decode("utf-8"), None
