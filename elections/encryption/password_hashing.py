# elections/encryption/password_hashing.py

from argon2 import PasswordHasher
from argon2.exceptions import VerifyMismatchError, VerificationError, InvalidHashError, HashingError

from elections.errors import ValidationError, UnexpectedError

MIN_PASSWORD_LENGTH = 6


# Password hashing and verification using Argon2id

class PasswordHashingService:
    def __init__(self, time_cost=3, memory_cost=65536, parallelism=4):
        self.ph = PasswordHasher(
            time_cost=time_cost,
            memory_cost=memory_cost,
            parallelism=parallelism,
            hash_len=32,
            salt_len=16,
        )

    def hash_password(self, password: str) -> str:
        if not self.is_acceptable_password(password):
            raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
        try:
            return self.ph.hash(password)
        except HashingError as e:
            raise UnexpectedError(f"Password hashing failed: {e}")

    def verify_password(self, password: str, hash_value: str) -> bool:
        if not isinstance(password, str) or not hash_value:
            return False
        try:
            return self.ph.verify(hash_value, password)
        except (VerifyMismatchError, VerificationError, InvalidHashError):
            return False

    def needs_rehash(self, hash_value: str) -> bool:
        return self.ph.check_needs_rehash(hash_value)

    def is_acceptable_password(self, password) -> bool:
        return isinstance(password, str) and len(password) >= MIN_PASSWORD_LENGTH
