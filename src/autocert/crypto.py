"""Key, CSR, PKCS#12 and JOSE helpers built on ``cryptography``.

Account keys and certificate keys are either RSA or NIST-curve ECDSA keys;
``PrivateKey`` names that union everywhere in autocert.
"""

import base64
import hashlib
import hmac
import json

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec, padding, rsa
from cryptography.hazmat.primitives.asymmetric.utils import decode_dss_signature
from cryptography.hazmat.primitives.serialization import pkcs12
from cryptography.x509.oid import NameOID

from autocert.models import CsrInfo, KeyAlgorithm

PrivateKey = rsa.RSAPrivateKey | ec.EllipticCurvePrivateKey

_CURVES: dict[str, ec.EllipticCurve] = {
    "P-256": ec.SECP256R1(),
    "P-384": ec.SECP384R1(),
    "P-521": ec.SECP521R1(),
}

# cryptography curve name -> (JWK crv, coordinate bytes, JWS alg, digest)
_EC_PARAMETERS: dict[str, tuple[str, int, str, type[hashes.HashAlgorithm]]] = {
    "secp256r1": ("P-256", 32, "ES256", hashes.SHA256),
    "secp384r1": ("P-384", 48, "ES384", hashes.SHA384),
    "secp521r1": ("P-521", 66, "ES512", hashes.SHA512),
}

_ALGORITHM_CURVES = {
    KeyAlgorithm.ES256: "P-256",
    KeyAlgorithm.ES384: "P-384",
    KeyAlgorithm.ES521: "P-521",
}


def generate_rsa_key(key_size: int = 2048) -> rsa.RSAPrivateKey:
    return rsa.generate_private_key(public_exponent=65537, key_size=key_size)


def generate_ecdsa_key(curve: str = "P-256") -> ec.EllipticCurvePrivateKey:
    """Generate a key on ``curve`` ("P-256", "P-384" or "P-521").

    Raises:
        ValueError: For any other curve name.
    """
    if curve not in _CURVES:
        raise ValueError(f"Unsupported curve: {curve}. Supported: {sorted(_CURVES)}")
    return ec.generate_private_key(_CURVES[curve])


def generate_private_key(algorithm: KeyAlgorithm) -> PrivateKey:
    """Generate a key for the configured ``key_algorithm`` (RS256 means RSA-2048)."""
    if algorithm == KeyAlgorithm.RS256:
        return generate_rsa_key()
    return generate_ecdsa_key(_ALGORITHM_CURVES[algorithm])


def load_private_key_pem(pem_data: str, password: bytes | None = None) -> PrivateKey:
    """Parse an RSA or ECDSA private key from PEM.

    Raises:
        ValueError: If the PEM is malformed, the password is missing or wrong,
            or the key is of another type.
    """
    try:
        key = serialization.load_pem_private_key(pem_data.encode("utf-8"), password=password)
    except TypeError as e:
        # encrypted key without a password, or a password for a plain key
        raise ValueError("Invalid password or encrypted key requires password") from e
    except ValueError as e:
        message = str(e).lower()
        if any(hint in message for hint in ("password", "decrypt", "asn.1")):
            raise ValueError("Invalid password or encrypted key requires password") from e
        raise ValueError(f"Invalid PEM data: {e}") from e

    if not isinstance(key, (rsa.RSAPrivateKey, ec.EllipticCurvePrivateKey)):
        raise ValueError(f"Unsupported key type: {type(key).__name__}")
    return key


def private_key_to_pem(key: PrivateKey) -> str:
    """Serialize a private key as unencrypted PKCS#8 PEM."""
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("ascii")


def create_csr(
    key: PrivateKey,
    domains: list[str],
    csr_info: CsrInfo | None = None,
) -> x509.CertificateSigningRequest:
    """Create a Certificate Signing Request (CSR).

    The first domain becomes the Common Name; all domains are listed
    in the SubjectAlternativeName extension.

    Args:
        key: Private key to sign the CSR.
        domains: List of domain names to include in the CSR.
        csr_info: Optional subject fields (country, state, ...).

    Returns:
        Certificate Signing Request.

    Raises:
        ValueError: If domains list is empty.
    """
    if not domains:
        raise ValueError("At least one domain is required")

    attributes = []
    if csr_info is not None:
        for oid, value in (
            (NameOID.COUNTRY_NAME, csr_info.country),
            (NameOID.STATE_OR_PROVINCE_NAME, csr_info.state),
            (NameOID.LOCALITY_NAME, csr_info.locality),
            (NameOID.ORGANIZATION_NAME, csr_info.organization),
            (NameOID.ORGANIZATIONAL_UNIT_NAME, csr_info.organization_unit),
        ):
            if value:
                attributes.append(x509.NameAttribute(oid, value))
    attributes.append(x509.NameAttribute(NameOID.COMMON_NAME, domains[0]))

    san = x509.SubjectAlternativeName([x509.DNSName(domain) for domain in domains])

    builder = (
        x509.CertificateSigningRequestBuilder()
        .subject_name(x509.Name(attributes))
        .add_extension(san, critical=False)
    )
    return builder.sign(key, hashes.SHA256())


def build_pkcs12(
    key: PrivateKey,
    chain_pem: str,
    password: str,
    friendly_name: str,
) -> bytes:
    """Package a certificate chain and its key as a password-protected PKCS#12 blob.

    Args:
        key: The certificate's private key.
        chain_pem: PEM chain as downloaded from the CA (leaf first).
        password: Password protecting the blob.
        friendly_name: Friendly name stored with the leaf.

    Returns:
        DER-encoded PKCS#12 bytes.
    """
    chain = x509.load_pem_x509_certificates(chain_pem.encode())
    return pkcs12.serialize_key_and_certificates(
        name=friendly_name.encode(),
        key=key,
        cert=chain[0],
        cas=chain[1:] or None,
        encryption_algorithm=serialization.BestAvailableEncryption(password.encode()),
    )


def load_pkcs12(
    data: bytes, password: str
) -> tuple[PrivateKey | None, x509.Certificate, list[x509.Certificate]]:
    """Load a PKCS#12 blob.

    Returns:
        Tuple of (private key, leaf certificate, additional certificates).

    Raises:
        ValueError: If the blob is corrupt, has no certificate, or the password is wrong.
    """
    key, certificate, additional = pkcs12.load_key_and_certificates(data, password.encode())
    if certificate is None:
        raise ValueError("PKCS#12 blob contains no certificate")
    return key, certificate, list(additional)


def base64url_encode(data: bytes) -> str:
    """Encode as unpadded base64url, the encoding used throughout JOSE."""
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def base64url_decode(data: str) -> bytes:
    return base64.urlsafe_b64decode(data + "=" * (-len(data) % 4))


def pem_to_der(pem: str) -> bytes:
    """Re-encode the first certificate of a PEM string as DER."""
    return x509.load_pem_x509_certificate(pem.encode()).public_bytes(serialization.Encoding.DER)


def _json_b64(value: dict) -> str:
    return base64url_encode(json.dumps(value, separators=(",", ":")).encode("utf-8"))


def _fixed_width(n: int, size: int) -> bytes:
    return n.to_bytes(size, byteorder="big")


def _ec_parameters(key: ec.EllipticCurvePrivateKey) -> tuple[str, int, str, type[hashes.HashAlgorithm]]:
    try:
        return _EC_PARAMETERS[key.curve.name]
    except KeyError:
        raise ValueError(f"Unsupported curve: {key.curve.name}") from None


def get_jwk(key: PrivateKey) -> dict:
    """Public half of ``key`` as a JSON Web Key (RFC 7517)."""
    if isinstance(key, rsa.RSAPrivateKey):
        numbers = key.public_key().public_numbers()
        return {
            "kty": "RSA",
            "n": base64url_encode(_fixed_width(numbers.n, (numbers.n.bit_length() + 7) // 8)),
            "e": base64url_encode(_fixed_width(numbers.e, (numbers.e.bit_length() + 7) // 8)),
        }

    crv, size, _, _ = _ec_parameters(key)
    point = key.public_key().public_numbers()
    return {
        "kty": "EC",
        "crv": crv,
        "x": base64url_encode(_fixed_width(point.x, size)),
        "y": base64url_encode(_fixed_width(point.y, size)),
    }


# Members that enter the RFC 7638 thumbprint, per key type
_THUMBPRINT_MEMBERS = {"RSA": ("e", "kty", "n"), "EC": ("crv", "kty", "x", "y")}


def key_thumbprint(key: PrivateKey) -> str:
    """Base64url SHA-256 JWK thumbprint (RFC 7638), as used in key authorizations."""
    jwk = get_jwk(key)
    canonical = {member: jwk[member] for member in _THUMBPRINT_MEMBERS[jwk["kty"]]}
    digest = hashlib.sha256(json.dumps(canonical, sort_keys=True, separators=(",", ":")).encode("utf-8"))
    return base64url_encode(digest.digest())


def jws_algorithm(key: PrivateKey) -> str:
    """Return the JWS ``alg`` value for a key."""
    if isinstance(key, rsa.RSAPrivateKey):
        return "RS256"
    return _ec_parameters(key)[2]


def _sign(key: PrivateKey, signing_input: bytes) -> bytes:
    if isinstance(key, rsa.RSAPrivateKey):
        return key.sign(signing_input, padding.PKCS1v15(), hashes.SHA256())
    _, size, _, hash_cls = _ec_parameters(key)
    r, s = decode_dss_signature(key.sign(signing_input, ec.ECDSA(hash_cls())))
    # JWS carries r||s at fixed width rather than the DER sequence
    return _fixed_width(r, size) + _fixed_width(s, size)


def sign_jws(
    key: PrivateKey,
    payload: dict | str,
    url: str,
    nonce: str | None = None,
    kid: str | None = None,
) -> dict[str, str]:
    """Sign an ACME request body in flattened JSON serialization.

    The protected header names the account by ``kid`` when one is given and
    embeds the public JWK otherwise (account creation, the inner key-change
    JWS). The inner key-change JWS is also the only one signed without a
    nonce.

    Args:
        key: Signing key.
        payload: JSON object, or ``""`` for POST-as-GET.
        url: Request URL, bound into the header.
        nonce: Replay-Nonce from the server.
        kid: Account URL.

    Returns:
        ``{"protected": ..., "payload": ..., "signature": ...}``
    """
    header: dict[str, str | dict] = {"alg": jws_algorithm(key), "url": url}
    if nonce is not None:
        header["nonce"] = nonce
    if kid:
        header["kid"] = kid
    else:
        header["jwk"] = get_jwk(key)

    protected = _json_b64(header)
    body = "" if payload == "" else _json_b64(payload)
    signature = _sign(key, f"{protected}.{body}".encode())
    return {"protected": protected, "payload": body, "signature": base64url_encode(signature)}


def sign_eab_jws(key: PrivateKey, key_id: str, hmac_key: str, url: str) -> dict[str, str]:
    """External Account Binding object for a newAccount request (RFC 8555 7.3.4).

    The account's public JWK is MAC'd with the CA-issued HMAC key
    (base64url) under the CA-issued ``key_id``.
    """
    protected = _json_b64({"alg": "HS256", "kid": key_id, "url": url})
    body = _json_b64(get_jwk(key))
    mac = hmac.new(base64url_decode(hmac_key), f"{protected}.{body}".encode(), hashlib.sha256)
    return {"protected": protected, "payload": body, "signature": base64url_encode(mac.digest())}
