import base64
import hashlib

from src.base.auth.crypto import (
    generate_token,
    hash_password,
    hash_token,
    random_id,
    verify_password,
)


def _record(password: str, salt: bytes, iterations: int) -> str:
    derived = hashlib.pbkdf2_hmac("sha256", password.encode(), salt, iterations, 32)
    return "pbkdf2:{}:{}:{}".format(
        iterations,
        base64.b64encode(salt).decode(),
        base64.b64encode(derived).decode(),
    )


class TestPasswordHashing:
    def test_record_format(self):
        record = hash_password("correct horse")
        scheme, iterations, salt, digest = record.split(":")
        assert scheme == "pbkdf2"
        assert iterations == "100000"
        assert len(base64.b64decode(salt)) == 16
        assert len(base64.b64decode(digest)) == 32

    def test_verify_roundtrip(self):
        record = hash_password("correct horse")
        assert verify_password("correct horse", record)
        assert not verify_password("wrong horse", record)

    def test_salts_differ(self):
        assert hash_password("same") != hash_password("same")

    def test_verifies_records_with_other_iteration_counts(self):
        record = _record("legacy-pass", b"0123456789abcdef", 1000)
        assert verify_password("legacy-pass", record)
        assert not verify_password("legacy-pas", record)

    def test_malformed_records_are_rejected(self):
        for record in (
            None,
            "",
            "plaintext",
            "bcrypt:1:aa:bb",
            "pbkdf2:abc:AAAA:AAAA",
            "pbkdf2:1000:not base64!:AAAA",
            "pbkdf2:0:AAAA:AAAA",
            "pbkdf2:1000:AAAA",
        ):
            assert verify_password("anything", record) is False


class TestTokens:
    def test_generate_token_is_hex_of_requested_size(self):
        token = generate_token(32)
        assert len(token) == 64
        int(token, 16)
        assert generate_token() != generate_token()

    def test_hash_token_is_base64_sha256(self):
        expected = base64.b64encode(hashlib.sha256(b"abc").digest()).decode()
        assert hash_token("abc") == expected
        assert hash_token("abc") != hash_token("abd")

    def test_random_id_prefix(self):
        assert random_id("usr_").startswith("usr_")
        assert random_id("ses_") != random_id("ses_")


class TestLoneSurrogates:
    def test_token_hash_replaces_lone_surrogate(self):
        assert hash_token("\ud800") == hash_token("\ufffd")

    def test_password_with_lone_surrogate_is_hashable(self):
        record = hash_password("pass\udc00word")
        assert verify_password("pass\ufffdword", record) is True
        assert verify_password("pass\udc00word", record) is True
        assert verify_password("password", record) is False

    def test_surrogate_pair_matches_combined_character(self):
        assert hash_token("\ud83d\ude00") == hash_token("\U0001f600")
