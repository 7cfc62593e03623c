import argparse
import sys

from .configloader import SignerConfig, ConfigError, load_config, validity_in_range
from .crypto import DIGEST_CANDIDATES
from .exceptions import SigningError
from .logging_config import configure_logging
from .pipeline import sign_certificate_request


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        prog="casign",
        description="Sign a certificate request (CSR) with a CA key and certificate.",
    )
    parser.add_argument("--config", help="ini file with a [casign] section")
    parser.add_argument("--key", help="CA private key, PEM (default: [casign]cakey)")
    parser.add_argument("--ca", help="CA certificate, PEM (default: [casign]cacert)")
    parser.add_argument("--csr", required=True, help="certificate request, PEM")
    parser.add_argument("--out", help="write the certificate here instead of stdout")
    parser.add_argument("--passphrase-file", help="file holding the CA key passphrase")
    parser.add_argument("--validity-days", type=int, help="default: 365")
    parser.add_argument("--digest", choices=sorted(DIGEST_CANDIDATES))
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    parser.add_argument("--json", action="store_true", help="log as JSON lines")
    return parser.parse_args(argv)


def _read(path):
    with open(path, "rb") as f:
        return f.read()


def main(argv=None):
    """ entry point of the ``casign`` command

    Returns:
        int: exit status; 0 on success, 1 if signing failed, 2 on bad
        configuration or unreadable files.
    """
    args = parse_args(argv)
    configure_logging("DEBUG" if args.verbose else "WARNING", json=args.json)

    cparser = None
    try:
        if args.config:
            config, cparser = load_config(args.config)
        else:
            config = SignerConfig()
        if args.validity_days is not None:
            if args.validity_days <= 0:
                raise ConfigError("--validity-days must be positive")
            if not validity_in_range(args.validity_days):
                raise ConfigError("--validity-days reaches beyond the year 9999")
            config.validity_days = args.validity_days
        if args.digest:
            config.digest = args.digest
    except ConfigError as e:
        print(f"config error: {e}", file=sys.stderr)
        return 2

    section = cparser["casign"] if cparser is not None else {}
    key_path = args.key or section.get("cakey")
    ca_path = args.ca or section.get("cacert")
    if not key_path or not ca_path:
        print("config error: CA key and certificate are required", file=sys.stderr)
        return 2

    try:
        private_key = _read(key_path)
        ca_certificate = _read(ca_path)
        csr = _read(args.csr)
        if args.passphrase_file:
            passphrase = _read(args.passphrase_file).rstrip(b"\r\n")
        else:
            passphrase = section.get("passphrase")
    except OSError as e:
        print(f"can't read input: {e}", file=sys.stderr)
        return 2

    try:
        certificate = sign_certificate_request(
            private_key, ca_certificate, csr, passphrase=passphrase, config=config
        )
    except SigningError as e:
        print(f"error ({e.kind}): {e.message}", file=sys.stderr)
        return 1

    if args.out:
        with open(args.out, "wb") as f:
            f.write(certificate)
    else:
        sys.stdout.buffer.write(certificate)
    return 0


if __name__ == "__main__":
    sys.exit(main())
