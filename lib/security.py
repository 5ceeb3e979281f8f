# =============================================================================
# lib/security.py - Security Helpers
# =============================================================================
# Password hashing, opaque token generation/hashing, and small guards used
# by the auth flows:
# - bcrypt for passwords
# - SHA-256 for tokens stored in the database (only hashes are stored)
# - constant-time delays to avoid leaking which emails exist
# - disposable email domain blocklist
# - URL validation to keep server-side fetches off private networks
# =============================================================================

import hashlib
import hmac
import ipaddress
import random
import secrets
import socket
import time
from urllib.parse import urlparse

import bcrypt

BCRYPT_ROUNDS = 12


# =============================================================================
# Passwords
# =============================================================================

def hash_password(password: str) -> str:
    """Hash a password with bcrypt."""
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=BCRYPT_ROUNDS)).decode("utf-8")


def verify_password(password: str, hashed: str) -> bool:
    """Check a password against a bcrypt hash. Malformed hashes never match."""
    try:
        return bcrypt.checkpw(password.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        return False


# Compared against when the user doesn't exist, so a login for an unknown
# email costs the same bcrypt time as a wrong password.
DUMMY_PASSWORD_HASH = hash_password("noteflow-dummy-password")


# =============================================================================
# Opaque Tokens
# =============================================================================

def generate_token(nbytes: int = 32) -> str:
    """Random hex token (64 characters for the default 32 bytes)."""
    return secrets.token_hex(nbytes)


def hash_token(token: str) -> str:
    """SHA-256 hex digest used to store tokens at rest."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def verify_token_hash(token: str, token_hash: str) -> bool:
    return hmac.compare_digest(hash_token(token), token_hash)


def constant_delay(min_ms: int = 200, max_ms: int = 300) -> None:
    """Sleep a random 200-300ms so early-exit paths match the slow path."""
    time.sleep(random.uniform(min_ms, max_ms) / 1000)


# =============================================================================
# Emails
# =============================================================================

DISPOSABLE_EMAIL_DOMAINS = frozenset({
    "10minutemail.com",
    "10minutemail.net",
    "20minutemail.com",
    "33mail.com",
    "dispostable.com",
    "discard.email",
    "fakeinbox.com",
    "getairmail.com",
    "getnada.com",
    "guerrillamail.biz",
    "guerrillamail.com",
    "guerrillamail.de",
    "guerrillamail.net",
    "guerrillamail.org",
    "mailcatch.com",
    "maildrop.cc",
    "mailinator.com",
    "mailinator.net",
    "mailnesia.com",
    "mintemail.com",
    "mohmal.com",
    "mytemp.email",
    "sharklasers.com",
    "spamgourmet.com",
    "temp-mail.org",
    "tempail.com",
    "tempmail.com",
    "tempmail.net",
    "tempr.email",
    "throwawaymail.com",
    "trashmail.com",
    "yopmail.com",
    "yopmail.fr",
    "yopmail.net",
})


def get_email_domain(email: str) -> str:
    return email.rsplit("@", 1)[-1].strip().lower()


def is_disposable_email(email: str) -> bool:
    return get_email_domain(email) in DISPOSABLE_EMAIL_DOMAINS


def mask_email(email: str) -> str:
    """
    Mask an email for logs.

    Example:
        mask_email("johndoe@example.com") -> "joh***@example.com"
    """
    if "@" not in email:
        return "***"
    local, domain = email.rsplit("@", 1)
    return f"{local[:3]}***@{domain}"


# =============================================================================
# Outbound URLs
# =============================================================================

class UnsafeURLError(ValueError):
    """Raised when a URL must not be fetched server-side."""


def validate_external_url(url: str, resolve: bool = True) -> str:
    """
    Reject URLs that would make the server fetch something internal.

    Only http/https are allowed. The host must not be localhost or resolve
    to a private, loopback, link-local or reserved address.

    Args:
        url: URL to validate
        resolve: Resolve the hostname and check every returned address

    Returns:
        The URL unchanged

    Raises:
        UnsafeURLError: If the URL is not safe to fetch
    """
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https"):
        raise UnsafeURLError(f"Unsupported URL scheme: {parsed.scheme or 'none'}")

    host = parsed.hostname
    if not host:
        raise UnsafeURLError("URL has no host")

    if host.lower() in ("localhost", "localhost.localdomain") or host.lower().endswith(".local"):
        raise UnsafeURLError(f"Host not allowed: {host}")

    addresses: list[str] = []
    try:
        addresses = [str(ipaddress.ip_address(host))]
    except ValueError:
        if resolve:
            try:
                infos = socket.getaddrinfo(host, parsed.port or 443, proto=socket.IPPROTO_TCP)
            except socket.gaierror as e:
                raise UnsafeURLError(f"Could not resolve host: {host}") from e
            addresses = [info[4][0] for info in infos]

    for address in addresses:
        ip = ipaddress.ip_address(address)
        if ip.is_private or ip.is_loopback or ip.is_link_local or ip.is_reserved or ip.is_multicast:
            raise UnsafeURLError(f"Host resolves to a non-public address: {host}")

    return url
