"""TOTP secrets, provisioning URIs and backup codes.

Works with any RFC 6238 authenticator app (Google Authenticator,
Microsoft Authenticator, Authy, 1Password, ...). Uses pyotp internally.
Everything here is stateless: nothing is stored and nothing is logged.
"""

from __future__ import annotations

import base64
import binascii
import io
import secrets
from typing import TYPE_CHECKING, Any

import pyotp

from .config import BACKUP_CODE_ALPHABET, TOTP_DIGITS, MfaConfig
from .domain import CandidateKind
from .exceptions import InvalidFormatError

if TYPE_CHECKING:
    from datetime import datetime

_SEPARATORS = str.maketrans("", "", " -\t\r\n")


def normalize_candidate(candidate: str) -> str:
    """Strip separators and whitespace, uppercase."""
    return candidate.translate(_SEPARATORS).upper()


def classify_candidate(
    candidate: str, *, backup_code_length: int = 8
) -> tuple[CandidateKind, str]:
    """Classify a submitted code by shape.

    Any alphanumeric input of backup-code length takes the backup-code path,
    including characters outside the issuing alphabet (0, 1, I, O). Such
    input can never match a stored hash and fails as an invalid code,
    counting as an attempt.

    Args:
        candidate: Raw user input.
        backup_code_length: Expected backup code length.

    Returns:
        Tuple of the code kind and the normalized code.

    Raises:
        InvalidFormatError: If the input is neither a TOTP nor a backup code.
    """
    if not isinstance(candidate, str):
        raise InvalidFormatError("Code must be a string")

    normalized = normalize_candidate(candidate)

    if len(normalized) == TOTP_DIGITS and normalized.isdigit():
        return CandidateKind.TOTP, normalized

    if (
        len(normalized) == backup_code_length
        and normalized.isascii()
        and normalized.isalnum()
    ):
        return CandidateKind.BACKUP_CODE, normalized

    raise InvalidFormatError("Code does not match any known format")


class CodeGenerator:
    """Generator and verifier for TOTP codes and backup codes.

    Example:
        ```python
        generator = CodeGenerator(issuer="Atlas Pharma")

        secret = generator.generate_totp_secret()
        uri = generator.build_provisioning_uri(secret, "jane@example.com")

        code = generator.compute_totp(secret, now)
        assert generator.verify_totp(secret, code, now)

        backup_codes = generator.generate_backup_codes()
        ```
    """

    def __init__(
        self,
        *,
        issuer: str = "Atlas Pharma",
        interval: int = 30,
        valid_window: int = 1,
        secret_length: int = 32,
        backup_code_length: int = 8,
        backup_code_count: int = 10,
    ) -> None:
        """Initialize the generator.

        Args:
            issuer: Application name shown in authenticator apps.
            interval: Time step in seconds (default 30).
            valid_window: Accept codes ±N steps for clock drift (default 1).
            secret_length: Base32 secret length (default 32 = 160 bits).
            backup_code_length: Characters per backup code (default 8).
            backup_code_count: Default number of backup codes (default 10).
        """
        self.issuer = issuer
        self.interval = interval
        self.valid_window = valid_window
        self.secret_length = secret_length
        self.backup_code_length = backup_code_length
        self.backup_code_count = backup_code_count

    @classmethod
    def from_config(cls, config: MfaConfig) -> CodeGenerator:
        return cls(
            issuer=config.issuer,
            interval=config.totp_interval,
            valid_window=config.totp_valid_window,
            secret_length=config.secret_length,
            backup_code_length=config.backup_code_length,
            backup_code_count=config.backup_code_count,
        )

    # ── TOTP ─────────────────────────────────────────────────────

    def generate_totp_secret(self) -> str:
        """Generate a random base32 TOTP secret.

        pyotp draws from ``secrets`` (CSPRNG).

        Returns:
            Base32-encoded secret without padding.
        """
        return pyotp.random_base32(length=self.secret_length)

    def is_valid_secret(self, secret: str) -> bool:
        """Check that a secret decodes as base32 with enough entropy."""
        if not isinstance(secret, str) or len(secret) < 32:
            return False
        padded = secret.upper() + "=" * (-len(secret) % 8)
        try:
            base64.b32decode(padded, casefold=True)
        except (binascii.Error, ValueError):
            return False
        return True

    def _totp(self, secret: str) -> pyotp.TOTP:
        return pyotp.TOTP(
            secret,
            digits=TOTP_DIGITS,
            interval=self.interval,
            issuer=self.issuer,
        )

    def build_provisioning_uri(
        self,
        secret: str,
        account_label: str,
        issuer: str | None = None,
    ) -> str:
        """Build the otpauth:// URI consumed by QR renderers.

        Args:
            secret: Base32 secret.
            account_label: Account name displayed in the authenticator.
            issuer: Optional issuer override.

        Returns:
            otpauth://totp/... URI.
        """
        return self._totp(secret).provisioning_uri(
            name=account_label,
            issuer_name=issuer or self.issuer,
        )

    def format_manual_key(self, secret: str) -> str:
        """Format secret for manual entry (groups of 4)."""
        secret = secret.rstrip("=")
        return " ".join(secret[i : i + 4] for i in range(0, len(secret), 4))

    def compute_totp(self, secret: str, at: datetime) -> str:
        """Compute the 6-digit code for a given time."""
        return self._totp(secret).at(at)

    def verify_totp(
        self,
        secret: str,
        candidate: str,
        at: datetime,
        window: int | None = None,
    ) -> bool:
        """Verify a TOTP code.

        Accepts the current step and ±window steps; everything else is
        rejected. Comparison is constant-time.

        Args:
            secret: Base32 secret.
            candidate: Code to check.
            at: Verification time.
            window: Override of the configured drift window.

        Returns:
            True if the code is valid at ``at``.
        """
        valid_window = self.valid_window if window is None else window
        return bool(
            self._totp(secret).verify(candidate, for_time=at, valid_window=valid_window)
        )

    # ── QR ───────────────────────────────────────────────────────

    def _get_qrcode(self) -> Any:
        """Lazy import qrcode."""
        try:
            import qrcode

            return qrcode
        except ImportError as e:
            raise ImportError(
                "qrcode is required for QR rendering. "
                "Install with: pip install atlas-mfa[qr]"
            ) from e

    def render_qr_code(self, uri: str) -> str:
        """Render a provisioning URI as a base64-encoded PNG."""
        qrcode = self._get_qrcode()
        qr = qrcode.QRCode(version=1, box_size=10, border=4)
        qr.add_data(uri)
        qr.make(fit=True)
        image = qr.make_image(fill_color="black", back_color="white")

        buffer = io.BytesIO()
        image.save(buffer, "PNG")
        return base64.b64encode(buffer.getvalue()).decode()

    # ── Backup codes ─────────────────────────────────────────────

    def _generate_code(self) -> str:
        return "".join(
            secrets.choice(BACKUP_CODE_ALPHABET) for _ in range(self.backup_code_length)
        )

    def _format_code(self, code: str) -> str:
        """Format code with dashes for readability (e.g. "ABCD-EFGH")."""
        return "-".join(code[i : i + 4] for i in range(0, len(code), 4))

    def generate_backup_codes(self, count: int | None = None) -> list[str]:
        """Generate a batch of independent backup codes.

        NOTE: Returns plaintext codes that are shown to the user ONCE. The
        caller hashes them before storage and must never log them.

        Args:
            count: Number of codes (default from configuration).

        Returns:
            Unique formatted plaintext codes.

        Raises:
            ValueError: If ``count`` is less than 1.
        """
        if count is None:
            count = self.backup_code_count
        if count < 1:
            raise ValueError("count must be at least 1")
        codes: list[str] = []
        seen: set[str] = set()
        while len(codes) < count:
            code = self._generate_code()
            if code in seen:
                continue
            seen.add(code)
            codes.append(self._format_code(code))
        return codes


__all__: list[str] = ["CodeGenerator", "classify_candidate", "normalize_candidate"]
