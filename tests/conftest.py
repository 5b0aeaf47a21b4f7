"""Shared fixtures for the secret vault tests."""
import pytest

from navigator_secrets.vault import (
    IntegrityVerifier,
    MemorySecretStore,
    SecretVault,
    VaultConfig,
)

PEPPER = "test-pepper"


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_fields(
    nonce: str = "b" * 24,
    ciphertext: str = "Zm9v",
    salt: str = "c" * 24,
    pepper: str = PEPPER,
) -> dict:
    """Build create fields whose id is the digest of the payload."""
    verifier = IntegrityVerifier(pepper)
    return {
        "id": verifier.hexdigest(salt, nonce, ciphertext),
        "nonce": nonce,
        "ciphertext": ciphertext,
        "salt": salt,
    }


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def config():
    return VaultConfig(
        ttl=60,
        pepper=PEPPER,
        redis_url="memory://",
        backend_timeout=0.5,
    )


@pytest.fixture
def store(clock):
    return MemorySecretStore(clock=clock)


@pytest.fixture
def vault(store, config):
    return SecretVault(store, config=config)


@pytest.fixture
def fields():
    return make_fields()
