"""Tests for TOTP secrets, provisioning URIs and backup codes."""

from __future__ import annotations

import base64
import re
from datetime import timedelta

import pytest

from atlas_mfa import BACKUP_CODE_ALPHABET, CodeGenerator, MfaConfig
from atlas_mfa.domain import CandidateKind
from atlas_mfa.exceptions import InvalidFormatError
from atlas_mfa.generator import classify_candidate, normalize_candidate
from conftest import SECRET, T0

BACKUP_PATTERN = re.compile(rf"^[{BACKUP_CODE_ALPHABET}]{{4}}-[{BACKUP_CODE_ALPHABET}]{{4}}$")


class TestTotpSecret:
    def test_secret_is_160_bit_base32(self, generator: CodeGenerator) -> None:
        secret = generator.generate_totp_secret()

        assert len(secret) == 32
        assert len(base64.b32decode(secret)) == 20
        assert generator.is_valid_secret(secret)

    def test_secrets_are_random(self, generator: CodeGenerator) -> None:
        secrets = {generator.generate_totp_secret() for _ in range(20)}
        assert len(secrets) == 20

    @pytest.mark.parametrize("value", ["", "JBSWY3DP", "not base32 at all!!!!!!!!!!!!!!!!!", "1" * 32])
    def test_rejects_malformed_secret(self, generator: CodeGenerator, value: str) -> None:
        assert not generator.is_valid_secret(value)

    def test_provisioning_uri(self, generator: CodeGenerator) -> None:
        uri = generator.build_provisioning_uri(SECRET, "jane@example.com")

        assert uri.startswith("otpauth://totp/")
        assert f"secret={SECRET}" in uri
        assert "issuer=Atlas%20Pharma" in uri
        assert uri == generator.build_provisioning_uri(SECRET, "jane@example.com")

    def test_provisioning_uri_issuer_override(self, generator: CodeGenerator) -> None:
        uri = generator.build_provisioning_uri(SECRET, "jane", issuer="Other")
        assert "issuer=Other" in uri

    def test_manual_key_groups_of_four(self, generator: CodeGenerator) -> None:
        assert generator.format_manual_key(SECRET) == (
            "JBSW Y3DP EHPK 3PXP JBSW Y3DP EHPK 3PXP"
        )


class TestTotpVerification:
    def test_code_is_six_digits(self, generator: CodeGenerator) -> None:
        code = generator.compute_totp(SECRET, T0)
        assert len(code) == 6
        assert code.isdigit()

    def test_current_code_verifies(self, generator: CodeGenerator) -> None:
        for offset in (0, 7, 29):
            at = T0 + timedelta(seconds=offset)
            assert generator.verify_totp(SECRET, generator.compute_totp(SECRET, at), at)

    def test_one_step_late_is_accepted(self, generator: CodeGenerator) -> None:
        late_code = generator.compute_totp(SECRET, T0 + timedelta(seconds=45))
        assert generator.verify_totp(SECRET, late_code, T0)

    def test_one_step_early_is_accepted(self, generator: CodeGenerator) -> None:
        early_code = generator.compute_totp(SECRET, T0 - timedelta(seconds=30))
        assert generator.verify_totp(SECRET, early_code, T0)

    def test_four_steps_away_is_rejected(self, generator: CodeGenerator) -> None:
        future_code = generator.compute_totp(SECRET, T0 + timedelta(seconds=120))
        assert not generator.verify_totp(SECRET, future_code, T0)

    def test_zero_window_rejects_adjacent_step(self, generator: CodeGenerator) -> None:
        late_code = generator.compute_totp(SECRET, T0 + timedelta(seconds=30))
        assert not generator.verify_totp(SECRET, late_code, T0, window=0)

    def test_rfc6238_sha1_vector(self) -> None:
        # RFC 6238 Appendix B, T = 59 s, truncated to 6 digits
        rfc_secret = base64.b32encode(b"12345678901234567890").decode()
        generator = CodeGenerator()
        at = T0.replace(year=1970, month=1, day=1, hour=0, minute=0, second=59)
        assert generator.compute_totp(rfc_secret, at) == "287082"


class TestBackupCodes:
    def test_default_batch(self, generator: CodeGenerator) -> None:
        codes = generator.generate_backup_codes()

        assert len(codes) == 10
        assert len(set(codes)) == 10
        assert all(BACKUP_PATTERN.match(code) for code in codes)

    def test_custom_count(self, generator: CodeGenerator) -> None:
        assert len(generator.generate_backup_codes(3)) == 3

    def test_count_from_config(self) -> None:
        generator = CodeGenerator.from_config(MfaConfig(backup_code_count=12))
        assert len(generator.generate_backup_codes()) == 12

    @pytest.mark.parametrize("count", [0, -1])
    def test_explicit_count_below_one_rejected(
        self, generator: CodeGenerator, count: int
    ) -> None:
        with pytest.raises(ValueError):
            generator.generate_backup_codes(count)

    def test_codes_do_not_contain_ambiguous_characters(
        self, generator: CodeGenerator
    ) -> None:
        joined = "".join(generator.generate_backup_codes(50))
        assert not set(joined) & set("01OI")


class TestClassifyCandidate:
    def test_normalize(self) -> None:
        assert normalize_candidate(" abcd-efgh\n") == "ABCDEFGH"

    @pytest.mark.parametrize("raw", ["123456", "123 456", " 123-456 "])
    def test_totp_shapes(self, raw: str) -> None:
        assert classify_candidate(raw) == (CandidateKind.TOTP, "123456")

    @pytest.mark.parametrize("raw", ["ABCD-EFGH", "abcdefgh", "abcd efgh"])
    def test_backup_shapes(self, raw: str) -> None:
        assert classify_candidate(raw) == (CandidateKind.BACKUP_CODE, "ABCDEFGH")

    def test_eight_digit_backup_code(self) -> None:
        assert classify_candidate("2345-6789")[0] is CandidateKind.BACKUP_CODE

    @pytest.mark.parametrize("raw", ["ABCD-EFG0", "ABCD-EFGI", "o1o1-o1o1"])
    def test_characters_outside_alphabet_take_backup_path(self, raw: str) -> None:
        assert classify_candidate(raw)[0] is CandidateKind.BACKUP_CODE

    @pytest.mark.parametrize(
        "raw", ["", "12345", "1234567", "ABCDEFGHJ", "12345a", "ABCD_EFG", "ÄBCDEFGH"]
    )
    def test_invalid_shapes(self, raw: str) -> None:
        with pytest.raises(InvalidFormatError):
            classify_candidate(raw)


class TestQrCode:
    def test_render_png(self, generator: CodeGenerator) -> None:
        pytest.importorskip("qrcode")
        uri = generator.build_provisioning_uri(SECRET, "jane")

        png = base64.b64decode(generator.render_qr_code(uri))

        assert png.startswith(b"\x89PNG")
