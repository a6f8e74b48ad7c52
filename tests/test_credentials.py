"""
Test suite for credential hashing

Tests scrypt hashing, verification and handling of malformed hashes.
"""

from minibank.credentials import CredentialHasher, hash_password, verify_password


class TestCredentialHasher:
    """Test CredentialHasher functionality"""

    def setup_method(self):
        """Use a low scrypt cost to keep the suite fast"""
        self.hasher = CredentialHasher(n=1024, r=8, p=1)

    def test_hash_is_not_plaintext(self):
        """Test that the stored hash never contains the password"""
        hashed = self.hasher.hash("correct horse")
        assert isinstance(hashed, bytes)
        assert hashed
        assert b"correct horse" not in hashed
        assert hashed.startswith(b"scrypt$1024$8$1$")

    def test_hashes_are_salted(self):
        """Test that hashing the same password twice gives different hashes"""
        assert self.hasher.hash("pw") != self.hasher.hash("pw")

    def test_verify_matching_password(self):
        """Test that the original password verifies"""
        hashed = self.hasher.hash("pw")
        assert self.hasher.verify("pw", hashed)

    def test_verify_wrong_password(self):
        """Test that a different password does not verify"""
        hashed = self.hasher.hash("pw")
        assert not self.hasher.verify("wrong", hashed)
        assert not self.hasher.verify("", hashed)

    def test_verify_uses_parameters_stored_in_hash(self):
        """Test that a hash made with other cost parameters still verifies"""
        other = CredentialHasher(n=2048, r=4, p=1)
        hashed = other.hash("pw")
        assert self.hasher.verify("pw", hashed)

    def test_malformed_hash_returns_false(self):
        """Test that unparseable hashes are rejected without raising"""
        for bad in [b"", b"not-a-hash", b"scrypt$x$8$1$00$00", b"bcrypt$1024$8$1$00$00",
                    b"scrypt$1000$8$1$00$00", b"\xff\xfe", None]:
            assert not self.hasher.verify("pw", bad)

    def test_non_string_password_returns_false(self):
        """Test that passwords that are not str are rejected without raising"""
        hashed = self.hasher.hash("pw")
        for bad in [None, b"pw", 123, ["pw"]]:
            assert not self.hasher.verify(bad, hashed)

    def test_module_level_helpers(self):
        """Test the default hasher helpers"""
        hashed = hash_password("pw")
        assert verify_password("pw", hashed)
        assert not verify_password("wrong", hashed)
