"""Tests for file-backed token state durability and locking."""

from concurrent.futures import ThreadPoolExecutor

import pytest
from eth_account import Account

from raincloud import state_store
from raincloud.audit import AuditTrail, EventType
from raincloud.errors import ExpiredError, InsufficientBalanceError, StateError, UnauthorizedError
from raincloud.state_store import TokenStateStore
from raincloud.token import RainCloudToken
from raincloud.typed_data import MintDomain, sign_mint


TOKEN_ADDRESS = "0x5FbDB2315678afecb367f032d93F642f64180aa3"
NOW = 1_800_000_000
OWNER = Account.create()
ALICE = Account.create()


@pytest.fixture
def domain():
    return MintDomain(chain_id=8453, verifying_contract=TOKEN_ADDRESS)


@pytest.fixture
def store(tmp_path, domain):
    store = TokenStateStore(tmp_path / "state.json", clock=lambda: NOW)
    store.initialize(RainCloudToken(owner=OWNER.address, domain=domain))
    return store


class TestTokenStateStore:
    def test_initialize_once(self, store, domain):
        assert store.exists()
        with pytest.raises(StateError, match="already exists"):
            store.initialize(RainCloudToken(owner=ALICE.address, domain=domain))
        assert store.load().owner() == OWNER.address

    def test_load_without_init(self, tmp_path):
        with pytest.raises(StateError, match="raincloud init"):
            TokenStateStore(tmp_path / "missing.json").load()

    def test_transaction_persists(self, store):
        with store.transaction() as token:
            token.mint(OWNER.address, ALICE.address, 42)
        assert store.load().balance_of(ALICE.address) == 42

    def test_failed_transaction_rolls_back(self, store):
        with pytest.raises(InsufficientBalanceError):
            with store.transaction() as token:
                token.mint(OWNER.address, ALICE.address, 5)
                token.burn(ALICE.address, 6)
        assert store.load().total_supply() == 0

    def test_load_is_a_snapshot(self, store):
        token = store.load()
        token.mint(OWNER.address, ALICE.address, 1)
        assert store.load().total_supply() == 0

    def test_nonce_survives_reload(self, store, domain):
        sig = sign_mint(OWNER.key, domain, ALICE.address, 3, 0, NOW).signature
        with store.transaction() as token:
            token.mint_with_signature(ALICE.address, 3, NOW, sig)

        assert store.load().nonces(ALICE.address) == 1
        with pytest.raises(UnauthorizedError):
            with store.transaction() as token:
                token.mint_with_signature(ALICE.address, 3, NOW, sig)
        assert store.load().balance_of(ALICE.address) == 3

    def test_corrupt_state(self, store):
        store.path.write_text("{not json")
        with pytest.raises(StateError, match="Corrupt"):
            store.load()

    def test_unknown_schema_version(self, store):
        store.path.write_text('{"schema_version": 99}')
        with pytest.raises(StateError, match="schema version"):
            store.load()

    def test_state_file_is_private(self, store):
        assert store.path.stat().st_mode & 0o777 == 0o600

    def test_concurrent_transactions_serialize(self, store, domain):
        signed = sign_mint(OWNER.key, domain, ALICE.address, 1, 0, NOW).signature

        def direct(_):
            s = TokenStateStore(store.path, clock=lambda: NOW)
            with s.transaction() as token:
                token.mint(OWNER.address, ALICE.address, 1)

        def relay(_):
            s = TokenStateStore(store.path, clock=lambda: NOW)
            try:
                with s.transaction() as token:
                    token.mint_with_signature(ALICE.address, 1, NOW, signed)
                return True
            except UnauthorizedError:
                return False

        with ThreadPoolExecutor(max_workers=8) as ex:
            list(ex.map(direct, range(20)))
            relayed = list(ex.map(relay, range(8)))

        token = store.load()
        assert relayed.count(True) == 1
        assert token.nonces(ALICE.address) == 1
        assert token.total_supply() == 21


class TestAuditedTransactions:
    @pytest.fixture
    def audit_paths(self, tmp_path):
        return tmp_path / "audit.jsonl", tmp_path / "secret" / "audit_hmac.key"

    def _store(self, path, audit_paths):
        return TokenStateStore(path, audit=AuditTrail(*audit_paths), clock=lambda: NOW)

    def test_stores_opened_together_share_one_chain(self, store, audit_paths):
        first = self._store(store.path, audit_paths)
        second = self._store(store.path, audit_paths)

        with first.transaction() as token:
            token.mint(OWNER.address, ALICE.address, 1)
        with second.transaction() as token:
            token.mint(OWNER.address, ALICE.address, 1)

        assert store.load().total_supply() == 2
        assert len(AuditTrail(*audit_paths).read_events()) == 2

    def test_concurrent_audited_transactions(self, store, audit_paths):
        def direct(_):
            with self._store(store.path, audit_paths).transaction() as token:
                token.mint(OWNER.address, ALICE.address, 1)

        with ThreadPoolExecutor(max_workers=8) as ex:
            list(ex.map(direct, range(12)))

        assert store.load().total_supply() == 12
        assert len(AuditTrail(*audit_paths).read_events()) == 12

    def test_failed_block_keeps_only_rejections(self, store, domain, audit_paths):
        audited = self._store(store.path, audit_paths)
        expired = sign_mint(OWNER.key, domain, ALICE.address, 1, 0, NOW - 1).signature

        with pytest.raises(ExpiredError):
            with audited.transaction() as token:
                token.mint(OWNER.address, ALICE.address, 5)
                token.mint_with_signature(ALICE.address, 1, NOW - 1, expired)

        events = AuditTrail(*audit_paths).read_events()
        assert [e.event_type for e in events] == [EventType.MINT_REJECTED.value]
        assert store.load().total_supply() == 0

    def test_failed_save_writes_no_events(self, store, domain, audit_paths, monkeypatch):
        audited = self._store(store.path, audit_paths)
        sig = sign_mint(OWNER.key, domain, ALICE.address, 3, 0, NOW).signature

        def disk_full(path, payload):
            raise OSError("No space left on device")

        monkeypatch.setattr(state_store, "atomic_write_json", disk_full)
        with pytest.raises(OSError):
            with audited.transaction() as token:
                token.mint_with_signature(ALICE.address, 3, NOW, sig)
        monkeypatch.undo()

        assert AuditTrail(*audit_paths).read_events() == []
        assert store.load().nonces(ALICE.address) == 0
