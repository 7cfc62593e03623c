import datetime
import tracemalloc
import unittest

from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec, padding

import casign
import casign.pipeline as main
import pki_fixtures as pki
from casign import (
    SignerConfig,
    CounterSerial,
    FixedSerial,
    InputError,
    ParseError,
    InvalidSignatureError,
    BuildError,
    SignError,
)


def spki(key):
    return key.public_bytes(
        serialization.Encoding.DER, serialization.PublicFormat.SubjectPublicKeyInfo
    )


class PipelineTester(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        casign.init_crypto()
        cls.key_pem = pki.key_pem(pki.CA_KEY)
        cls.ca_pem = pki.ca_cert_pem()
        cls.csr_pem = pki.csr_pem()

    def sign(self, **kwargs):
        return casign.sign_certificate_request(
            self.key_pem, self.ca_pem, self.csr_pem, **kwargs
        )

    def test_gardenpath(self):
        result = self.sign()
        self.assertTrue(result.startswith(b"-----BEGIN CERTIFICATE-----\n"))
        self.assertTrue(result.endswith(b"-----END CERTIFICATE-----\n"))
        self.assertEqual(result.count(b"-----BEGIN"), 1)

        cert = pki.load(result)
        self.assertEqual(cert.version.name, "v3")
        self.assertEqual(len(cert.extensions), 0)
        self.assertIsInstance(cert.signature_hash_algorithm, hashes.SHA256)

        # signed by the CA key
        pki.CA_KEY.public_key().verify(
            cert.signature,
            cert.tbs_certificate_bytes,
            padding.PKCS1v15(),
            cert.signature_hash_algorithm,
        )
        cert.verify_directly_issued_by(pki.ca_cert())

    def test_no_trailing_byte(self):
        result = self.sign()
        reencoded = pki.load(result).public_bytes(serialization.Encoding.PEM)
        self.assertEqual(len(result), len(reencoded))
        self.assertNotIn(b"\x00", result)

    def test_subject_and_issuer(self):
        cert = pki.load(self.sign())
        self.assertEqual(cert.subject, pki.CLIENT_NAME)
        self.assertEqual(cert.subject.public_bytes(), pki.CLIENT_NAME.public_bytes())
        self.assertEqual(cert.issuer.public_bytes(), pki.CA_NAME.public_bytes())
        self.assertEqual(
            cert.subject.rfc4514_string(), "CN=www.example.test,OU=Ops,O=Example,C=AT"
        )

    def test_public_key_from_csr(self):
        cert = pki.load(self.sign())
        self.assertEqual(spki(cert.public_key()), spki(pki.CLIENT_KEY.public_key()))
        self.assertNotEqual(spki(cert.public_key()), spki(pki.CA_KEY.public_key()))

    def test_validity_window(self):
        before = datetime.datetime.now(datetime.timezone.utc)
        cert = pki.load(self.sign())
        not_before = cert.not_valid_before_utc
        self.assertLess(abs((not_before - before).total_seconds()), 5)
        self.assertEqual(
            cert.not_valid_after_utc - not_before, datetime.timedelta(days=365)
        )

    def test_validity_configurable(self):
        cert = pki.load(self.sign(config=SignerConfig(validity_days=30)))
        self.assertEqual(
            cert.not_valid_after_utc - cert.not_valid_before_utc,
            datetime.timedelta(days=30),
        )

    def test_digest_configurable(self):
        cert = pki.load(self.sign(config=SignerConfig(digest="sha384")))
        self.assertIsInstance(cert.signature_hash_algorithm, hashes.SHA384)

    def test_unknown_digest(self):
        with self.assertRaisesRegex(SignError, "md4"):
            self.sign(config=SignerConfig(digest="md4"))

    def test_str_inputs(self):
        result = casign.sign_certificate_request(
            self.key_pem.decode(), self.ca_pem.decode(), self.csr_pem.decode()
        )
        self.assertTrue(result.startswith(b"-----BEGIN CERTIFICATE-----"))

    def test_ec_ca(self):
        result = casign.sign_certificate_request(
            pki.key_pem(pki.EC_CA_KEY), pki.ca_cert_pem(pki.EC_CA_KEY), self.csr_pem
        )
        cert = pki.load(result)
        pki.EC_CA_KEY.public_key().verify(
            cert.signature, cert.tbs_certificate_bytes, ec.ECDSA(hashes.SHA256())
        )

    def test_rsa_csr(self):
        csr_pem = pki.csr_pem(pki.OTHER_KEY)
        cert = pki.load(
            casign.sign_certificate_request(self.key_pem, self.ca_pem, csr_pem)
        )
        self.assertEqual(spki(cert.public_key()), spki(pki.OTHER_KEY.public_key()))

    def test_encrypted_key(self):
        key_pem = pki.key_pem(pki.CA_KEY, b"s3cret")
        result = casign.sign_certificate_request(
            key_pem, self.ca_pem, self.csr_pem, passphrase=b"s3cret"
        )
        self.assertTrue(result.startswith(b"-----BEGIN CERTIFICATE-----"))
        # str passphrases are accepted too
        casign.sign_certificate_request(
            key_pem, self.ca_pem, self.csr_pem, passphrase="s3cret"
        )
        with self.assertRaises(ParseError):
            casign.sign_certificate_request(
                key_pem, self.ca_pem, self.csr_pem, passphrase=b"wrong"
            )
        with self.assertRaises(ParseError):
            casign.sign_certificate_request(key_pem, self.ca_pem, self.csr_pem)

    def test_tampered_csr(self):
        with self.assertRaises(InvalidSignatureError):
            casign.sign_certificate_request(
                self.key_pem, self.ca_pem, pki.tampered_csr_pem()
            )

    def test_tampered_csr_does_not_leak(self):
        tampered = pki.tampered_csr_pem()

        def attempt():
            with self.assertRaises(InvalidSignatureError):
                casign.sign_certificate_request(self.key_pem, self.ca_pem, tampered)

        for _ in range(20):  # warm up caches
            attempt()
        tracemalloc.start()
        try:
            first, _ = tracemalloc.get_traced_memory()
            for _ in range(300):
                attempt()
            last, _ = tracemalloc.get_traced_memory()
        finally:
            tracemalloc.stop()
        self.assertLess(last - first, 256 * 1024)

    def test_empty_inputs(self):
        for i, what in enumerate(["private key", "CA certificate", "certificate request"]):
            args = [self.key_pem, self.ca_pem, self.csr_pem]
            args[i] = b""
            with self.assertRaisesRegex(InputError, what) as cm:
                casign.sign_certificate_request(*args)
            self.assertEqual(cm.exception.kind, "input")

    def test_wrong_input_types(self):
        with self.assertRaises(InputError):
            casign.sign_certificate_request(None, self.ca_pem, self.csr_pem)
        with self.assertRaises(InputError):
            casign.sign_certificate_request(self.key_pem, 42, self.csr_pem)
        with self.assertRaises(InputError):
            casign.sign_certificate_request(self.key_pem, self.ca_pem, "ünicode")
        with self.assertRaises(TypeError):
            casign.sign_certificate_request(self.key_pem, self.ca_pem)

    def test_swapped_inputs(self):
        with self.assertRaises(ParseError) as cm:
            casign.sign_certificate_request(self.key_pem, self.csr_pem, self.ca_pem)
        self.assertEqual(cm.exception.object_kind, "certificate")
        with self.assertRaises(ParseError) as cm:
            casign.sign_certificate_request(self.ca_pem, self.key_pem, self.csr_pem)
        self.assertEqual(cm.exception.object_kind, "private key")

    def test_ca_key_mismatch(self):
        other_ca = pki.ca_cert_pem(pki.OTHER_KEY)
        with self.assertRaisesRegex(SignError, "does not belong"):
            casign.sign_certificate_request(self.key_pem, other_ca, self.csr_pem)
        # can be switched off, the issuer name still comes from the CA cert
        result = casign.sign_certificate_request(
            self.key_pem,
            other_ca,
            self.csr_pem,
            config=SignerConfig(verify_ca_key=False),
        )
        self.assertEqual(pki.load(result).issuer, pki.CA_NAME)

    def test_double_invocation(self):
        policy = FixedSerial(4711)
        first = pki.load(self.sign(config=SignerConfig(serial_policy=policy)))
        second = pki.load(self.sign(config=SignerConfig(serial_policy=policy)))
        self.assertEqual(first.serial_number, second.serial_number)
        self.assertEqual(first.subject, second.subject)

        # the default policy never repeats itself
        third = pki.load(self.sign())
        fourth = pki.load(self.sign())
        self.assertNotEqual(third.serial_number, fourth.serial_number)

    def test_counter_serials(self):
        config = SignerConfig(serial_policy=CounterSerial(100))
        serials = [pki.load(self.sign(config=config)).serial_number for _ in range(3)]
        self.assertEqual(serials, [100, 101, 102])

    def test_zero_serial(self):
        with self.assertRaises(BuildError) as cm:
            self.sign(config=SignerConfig(serial_policy=FixedSerial(0)))
        self.assertEqual(cm.exception.field, "serial_number")

    def test_broken_serial_policy(self):
        class Broken:
            name = "broken"

            def next_serial(self):
                raise RuntimeError("sequence unavailable")

        with self.assertRaisesRegex(BuildError, "sequence unavailable") as cm:
            self.sign(config=SignerConfig(serial_policy=Broken()))
        self.assertEqual(cm.exception.field, "serial_number")


class StageTester(unittest.TestCase):
    def test_verify_request(self):
        main.verify_request(pki.csr())
        self.assertRaises(
            InvalidSignatureError,
            main.verify_request,
            casign.pem.decode(
                pki.tampered_csr_pem(), casign.pem.ObjectKind.certificate_request
            ),
        )

    def test_build_certificate_fixed_time(self):
        now = datetime.datetime(2024, 2, 29, 12, 0, 0, 999999, datetime.timezone.utc)
        builder = main.build_certificate(
            pki.csr(), pki.ca_cert(), SignerConfig(serial_policy=FixedSerial(7)), now
        )
        cert = builder.sign(pki.CA_KEY, hashes.SHA256())
        self.assertEqual(
            cert.not_valid_before_utc,
            datetime.datetime(2024, 2, 29, 12, 0, 0, tzinfo=datetime.timezone.utc),
        )
        self.assertEqual(
            cert.not_valid_after_utc,
            datetime.datetime(2025, 2, 28, 12, 0, 0, tzinfo=datetime.timezone.utc),
        )
        self.assertEqual(cert.serial_number, 7)

    def test_build_error_names_field(self):
        with self.assertRaises(BuildError) as cm:
            main.build_certificate(
                pki.csr(),
                pki.ca_cert(),
                SignerConfig(serial_policy=FixedSerial(2**160)),
            )
        self.assertEqual(cm.exception.field, "serial_number")
        self.assertEqual(cm.exception.kind, "build")

    def test_sign_certificate(self):
        builder = main.build_certificate(pki.csr(), pki.ca_cert(), SignerConfig())
        cert = main.sign_certificate(builder, pki.CA_KEY, pki.ca_cert(), "sha512")
        self.assertIsInstance(cert.signature_hash_algorithm, hashes.SHA512)

    def test_validity_past_year_9999(self):
        config = SignerConfig()
        config.validity_days = 3_000_000  # skips the constructor's range check
        with self.assertRaises(BuildError) as cm:
            main.build_certificate(pki.csr(), pki.ca_cert(), config)
        self.assertEqual(cm.exception.field, "not_valid_after")
        self.assertIsInstance(cm.exception.__cause__, OverflowError)

        with self.assertRaises(BuildError):
            casign.sign_certificate_request(
                pki.key_pem(pki.CA_KEY), pki.ca_cert_pem(), pki.csr_pem(), config=config
            )

    def test_digest_not_a_string(self):
        builder = main.build_certificate(pki.csr(), pki.ca_cert(), SignerConfig())
        self.assertRaisesRegex(
            SignError,
            "None",
            main.sign_certificate,
            builder,
            pki.CA_KEY,
            pki.ca_cert(),
            None,
        )
