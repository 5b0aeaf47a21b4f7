"""
Tests for the SecretVault lifecycle over the in-memory store.

Tests cover:
- Round trip and one-time read
- Concurrent consumers and creators racing for the same identifier
- Conflict safety and tamper detection
- TTL expiry and idempotent delete
- Backend timeouts and retry policy
- Logs never carrying payload values
"""
import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor

import orjson
import pytest

from navigator_secrets.exceptions import (
    BackendUnavailable,
    Conflict,
    IntegrityFailure,
    InvalidParameter,
    NotFound,
)
from navigator_secrets.vault import (
    IntegrityVerifier,
    MemorySecretStore,
    SecretPayload,
    SecretVault,
    VaultConfig,
)

from .conftest import PEPPER, make_fields


def tamper(store: MemorySecretStore, secret_id: str, field: str, mutate) -> None:
    """Rewrite one field of a stored record in place."""
    key = store.storage_key(secret_id)
    deadline, raw = store._data[key]
    record = orjson.loads(raw)
    record[field] = mutate(record[field])
    store._data[key] = (deadline, orjson.dumps(record))


class AcceptingVerifier(IntegrityVerifier):
    """Verifier for identifiers not derived from their payload."""

    def verify(self, claimed_id, salt, nonce, ciphertext) -> bool:
        return True


class SlowStore(MemorySecretStore):
    async def read_and_delete(self, secret_id):
        await asyncio.sleep(1)
        return await super().read_and_delete(secret_id)


class FlakyStore(MemorySecretStore):
    """Fails the first ``failures`` calls of each operation."""

    def __init__(self, failures: int = 1, **kwargs):
        super().__init__(**kwargs)
        self.failures = failures
        self.calls = {"create": 0, "delete": 0}

    def _maybe_fail(self, op: str) -> None:
        self.calls[op] += 1
        if self.calls[op] <= self.failures:
            raise BackendUnavailable()

    async def create(self, secret_id, record, ttl):
        self._maybe_fail("create")
        return await super().create(secret_id, record, ttl)

    async def delete(self, secret_id):
        self._maybe_fail("delete")
        return await super().delete(secret_id)


class TestRoundTrip:
    """Tests for create followed by consume."""

    async def test_create_returns_timestamps(self, vault, fields):
        created = await vault.create(fields)
        assert created.id == fields["id"]
        assert (created.expires_at - created.created_at).total_seconds() == 60
        response = created.to_response()
        assert response["createdAt"].endswith("Z")
        assert response["expiresAt"].endswith("Z")

    async def test_round_trip(self, vault, fields):
        await vault.create(fields)
        payload = await vault.consume(fields["id"])
        assert payload == SecretPayload(
            nonce=fields["nonce"],
            ciphertext=fields["ciphertext"],
            salt=fields["salt"],
        )

    async def test_round_trip_large_payload(self, store, fields):
        vault = SecretVault(store, config=VaultConfig(pepper=PEPPER))
        big = make_fields(ciphertext="A" * 65536)
        await vault.create(big)
        payload = await vault.consume(big["id"])
        assert payload.ciphertext == big["ciphertext"]

    async def test_one_time_read(self, vault, fields):
        await vault.create(fields)
        await vault.consume(fields["id"])
        for _ in range(3):
            with pytest.raises(NotFound):
                await vault.consume(fields["id"])
        assert len(vault.store) == 0

    async def test_consume_unknown(self, vault):
        with pytest.raises(NotFound):
            await vault.consume("f" * 32)

    async def test_consume_invalid_id(self, vault):
        with pytest.raises(InvalidParameter) as exc:
            await vault.consume("not-an-id")
        assert exc.value.field == "id"

    async def test_literal_identifier_scenario(self, store):
        """Ids not derived from the payload, with verification bypassed."""
        vault = SecretVault(
            store,
            config=VaultConfig(pepper=PEPPER, verify_on_create=False),
            verifier=AcceptingVerifier(PEPPER),
        )
        created = await vault.create({
            "id": "a" * 32,
            "nonce": "b" * 24,
            "ciphertext": "Zm9v",
            "salt": "c" * 24,
        })
        assert created.id == "a" * 32
        payload = await vault.consume("a" * 32)
        assert payload.to_response() == {
            "nonce": "b" * 24,
            "ciphertext": "Zm9v",
            "salt": "c" * 24,
        }
        with pytest.raises(NotFound):
            await vault.consume("a" * 32)


class TestCreateVerification:
    """Tests for digest verification at creation time."""

    async def test_forged_id_rejected(self, vault, store):
        fields = make_fields()
        fields["id"] = "a" * 32
        with pytest.raises(InvalidParameter) as exc:
            await vault.create(fields)
        assert exc.value.field == "id"
        assert len(store) == 0

    async def test_forged_id_detected_on_read(self, store):
        """With creation checks disabled a mismatch surfaces on consume."""
        vault = SecretVault(
            store, config=VaultConfig(pepper=PEPPER, verify_on_create=False),
        )
        fields = make_fields()
        fields["id"] = "a" * 32
        await vault.create(fields)
        with pytest.raises(IntegrityFailure):
            await vault.consume("a" * 32)
        with pytest.raises(NotFound):
            await vault.consume("a" * 32)

    async def test_configured_size_limit(self, store):
        vault = SecretVault(
            store, config=VaultConfig(pepper=PEPPER, max_secret_bytes=8),
        )
        await vault.create(make_fields(ciphertext="x" * 8))
        with pytest.raises(InvalidParameter) as exc:
            await vault.create(make_fields(ciphertext="x" * 9))
        assert exc.value.field == "ciphertext"
        assert len(store) == 1


class TestConcurrency:
    """Tests for racing callers on the same identifier."""

    async def test_two_consumers_one_winner(self, vault, fields):
        await vault.create(fields)
        results = await asyncio.gather(
            vault.consume(fields["id"]),
            vault.consume(fields["id"]),
            return_exceptions=True,
        )
        successes = [r for r in results if isinstance(r, SecretPayload)]
        misses = [r for r in results if isinstance(r, NotFound)]
        assert len(successes) == 1
        assert len(misses) == 1

    async def test_many_consumers_one_winner(self, vault, fields):
        await vault.create(fields)
        results = await asyncio.gather(
            *(vault.consume(fields["id"]) for _ in range(50)),
            return_exceptions=True,
        )
        assert sum(isinstance(r, SecretPayload) for r in results) == 1
        assert sum(isinstance(r, NotFound) for r in results) == 49

    def test_threaded_consumers_one_winner(self, config):
        store = MemorySecretStore()
        vault = SecretVault(store, config=config)
        fields = make_fields()
        asyncio.run(vault.create(fields))

        def consume():
            try:
                return asyncio.run(vault.consume(fields["id"]))
            except NotFound as err:
                return err

        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(lambda _: consume(), range(32)))
        assert sum(isinstance(r, SecretPayload) for r in results) == 1

    async def test_concurrent_creators_one_winner(self, vault, fields):
        results = await asyncio.gather(
            *(vault.create(fields) for _ in range(10)),
            return_exceptions=True,
        )
        assert sum(isinstance(r, Conflict) for r in results) == 9


class TestConflict:
    """Tests for duplicate creation."""

    async def test_second_create_conflicts(self, store):
        vault = SecretVault(
            store,
            config=VaultConfig(pepper=PEPPER, verify_on_create=False),
            verifier=AcceptingVerifier(PEPPER),
        )
        first = make_fields(ciphertext="Zm9v")
        second = dict(make_fields(ciphertext="YmFy"), id=first["id"])
        await vault.create(first)
        with pytest.raises(Conflict):
            await vault.create(second)
        payload = await vault.consume(first["id"])
        assert payload.ciphertext == "Zm9v"

    async def test_create_after_consume(self, vault, fields):
        await vault.create(fields)
        await vault.consume(fields["id"])
        created = await vault.create(fields)
        assert created.id == fields["id"]


class TestTamperDetection:
    """Tests for stored data modified at rest."""

    @pytest.mark.parametrize("position", [0, 1, 3])
    @pytest.mark.parametrize("bit", [0, 1, 5])
    async def test_flipped_ciphertext_bit(self, vault, store, fields, position, bit):
        await vault.create(fields)

        def flip(value: str) -> str:
            char = chr(ord(value[position]) ^ (1 << bit))
            return value[:position] + char + value[position + 1:]

        tamper(store, fields["id"], "ciphertext", flip)
        with pytest.raises(IntegrityFailure):
            await vault.consume(fields["id"])

    @pytest.mark.parametrize("field", ["nonce", "salt"])
    async def test_modified_metadata(self, vault, store, fields, field):
        await vault.create(fields)
        tamper(store, fields["id"], field, lambda v: "x" + v[1:])
        with pytest.raises(IntegrityFailure):
            await vault.consume(fields["id"])

    async def test_tampered_record_is_discarded(self, vault, store, fields):
        await vault.create(fields)
        tamper(store, fields["id"], "ciphertext", lambda v: v + "A")
        with pytest.raises(IntegrityFailure):
            await vault.consume(fields["id"])
        with pytest.raises(NotFound):
            await vault.consume(fields["id"])

    async def test_corrupt_record(self, vault, store, fields):
        await vault.create(fields)
        key = store.storage_key(fields["id"])
        deadline, _ = store._data[key]
        store._data[key] = (deadline, b"{not json")
        with pytest.raises(IntegrityFailure):
            await vault.consume(fields["id"])
        assert key not in store._data


class TestExpiry:
    """Tests for TTL expiry."""

    async def test_expires_after_ttl(self, store, clock):
        vault = SecretVault(store, config=VaultConfig(pepper=PEPPER, ttl=1))
        fields = make_fields()
        await vault.create(fields)
        clock.advance(1)
        with pytest.raises(NotFound):
            await vault.consume(fields["id"])

    async def test_readable_before_ttl(self, store, clock):
        vault = SecretVault(store, config=VaultConfig(pepper=PEPPER, ttl=1))
        fields = make_fields()
        await vault.create(fields)
        clock.advance(0.5)
        payload = await vault.consume(fields["id"])
        assert payload.ciphertext == fields["ciphertext"]

    async def test_expired_id_can_be_reused(self, vault, clock, fields):
        await vault.create(fields)
        clock.advance(61)
        created = await vault.create(fields)
        assert created.id == fields["id"]

    async def test_expires_in_real_time(self):
        vault = SecretVault(
            MemorySecretStore(), config=VaultConfig(pepper=PEPPER, ttl=1),
        )
        fields = make_fields()
        await vault.create(fields)
        await asyncio.sleep(1.05)
        with pytest.raises(NotFound):
            await vault.consume(fields["id"])


class TestDelete:
    """Tests for explicit deletion."""

    async def test_delete_removes_secret(self, vault, fields):
        await vault.create(fields)
        await vault.delete(fields["id"])
        with pytest.raises(NotFound):
            await vault.consume(fields["id"])

    async def test_delete_is_idempotent(self, vault):
        assert await vault.delete("e" * 32) is None
        assert await vault.delete("e" * 32) is None

    async def test_delete_invalid_id(self, vault):
        with pytest.raises(InvalidParameter):
            await vault.delete("E" * 32)


class TestBackendFailures:
    """Tests for timeouts and retry policy."""

    async def test_consume_timeout(self, fields):
        store = SlowStore()
        vault = SecretVault(
            store, config=VaultConfig(pepper=PEPPER, backend_timeout=0.05),
        )
        await vault.create(fields)
        with pytest.raises(BackendUnavailable):
            await vault.consume(fields["id"])

    async def test_create_is_not_retried(self, fields):
        store = FlakyStore(failures=1)
        vault = SecretVault(
            store, config=VaultConfig(pepper=PEPPER, backend_retries=3),
        )
        with pytest.raises(BackendUnavailable):
            await vault.create(fields)
        assert store.calls["create"] == 1

    async def test_delete_is_retried(self, fields):
        store = FlakyStore(failures=1)
        vault = SecretVault(
            store, config=VaultConfig(pepper=PEPPER, backend_retries=1),
        )
        await vault.delete(fields["id"])
        assert store.calls["delete"] == 2

    async def test_delete_gives_up(self, fields):
        store = FlakyStore(failures=5)
        vault = SecretVault(
            store, config=VaultConfig(
                pepper=PEPPER, backend_retries=2, backend_retry_backoff=0,
            ),
        )
        with pytest.raises(BackendUnavailable):
            await vault.delete(fields["id"])
        assert store.calls["delete"] == 3

    async def test_delete_backs_off_between_retries(self, fields):
        store = FlakyStore(failures=2)
        vault = SecretVault(
            store,
            config=VaultConfig(
                pepper=PEPPER, backend_retries=2, backend_retry_backoff=0.05,
            ),
        )
        loop = asyncio.get_running_loop()
        started = loop.time()
        await vault.delete(fields["id"])
        # 0.05 then 0.1 seconds
        assert loop.time() - started >= 0.14
        assert store.calls["delete"] == 3

    async def test_heartbeat(self, vault):
        status = await vault.heartbeat()
        assert status["redisOk"] is True
        assert status["timestamp"].endswith("Z")


class TestLogging:
    """Payload values never reach the logs."""

    async def test_lifecycle_logs_only_identifiers(self, vault, store, caplog):
        fields = make_fields(
            nonce="NONCEnonceNONCEnonce0000",
            ciphertext="SECRETciphertextVALUE",
            salt="SALTsaltSALTsaltSALT0000",
        )
        caplog.set_level(logging.DEBUG, logger="navigator.secrets")
        await vault.create(fields)
        with pytest.raises(Conflict):
            await vault.create(fields)
        await vault.consume(fields["id"])
        await vault.delete(fields["id"])
        assert fields["id"] in caplog.text
        for value in (fields["nonce"], fields["ciphertext"], fields["salt"]):
            assert value not in caplog.text
