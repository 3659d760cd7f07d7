"""Well-known ACME directory URLs."""

LETSENCRYPT = "https://acme-v02.api.letsencrypt.org/directory"
LETSENCRYPT_STAGING = "https://acme-staging-v02.api.letsencrypt.org/directory"
ZEROSSL = "https://acme.zerossl.com/v2/DV90"
GOOGLE = "https://dv.acme-v02.api.pki.goog/directory"
GOOGLE_STAGING = "https://dv.acme-v02.test-api.pki.goog/directory"

__all__ = ["LETSENCRYPT", "LETSENCRYPT_STAGING", "ZEROSSL", "GOOGLE", "GOOGLE_STAGING"]
