import pytest
from eth_account import Account

from conftest import sha
from modules.ledger.models import LedgerEventKind, LedgerHead
from modules.ledger.services import GasSchedule, LedgerRejection, RejectReason, SignatureLedger, format_ether


class FakeClock:
    def __init__(self, now=1_700_000_000):
        self.now = now

    def __call__(self):
        self.now += 1
        return self.now


@pytest.fixture
def ledger(session):
    return SignatureLedger(session, clock=FakeClock())


@pytest.fixture
def creator():
    return Account.create().address


@pytest.fixture
def signers():
    return [Account.create().address, Account.create().address]


DOC = sha(b"contract v1")


def reject_reason(call, *args, **kwargs):
    with pytest.raises(LedgerRejection) as excinfo:
        call(*args, **kwargs)
    return excinfo.value.reason


def test_create_document_succeeds_once(ledger, creator, signers):
    receipt = ledger.create_document(DOC, signers, creator)
    assert receipt.position == 1
    assert receipt.transaction_hash.startswith("0x")
    assert receipt.gas_used > 0

    assert reject_reason(ledger.create_document, DOC, signers, creator) is RejectReason.DOCUMENT_EXISTS
    assert ledger.head_position() == 1


def test_create_document_requires_signers(ledger, creator):
    assert reject_reason(ledger.create_document, DOC, [], creator) is RejectReason.EMPTY_SIGNERS
    assert reject_reason(ledger.get_document, DOC) is RejectReason.DOCUMENT_MISSING


def test_create_document_rejects_malformed_identity(ledger, creator):
    reason = reject_reason(ledger.create_document, DOC, ["0x1234"], creator)
    assert reason is RejectReason.INVALID_IDENTITY


def test_signers_keep_declared_order(ledger, creator):
    declared = [Account.create().address for _ in range(5)]
    ledger.create_document(DOC, declared, creator)
    assert ledger.get_document_signers(DOC) == declared


def test_signature_starts_unsigned_and_stays_signed(ledger, creator, signers):
    ledger.create_document(DOC, signers, creator)
    for signer in signers:
        record = ledger.get_signature(DOC, signer)
        assert record.signed is False
        assert record.signed_at == 0
        assert record.metadata_ref == ""

    ledger.sign_document(DOC, "sha256:abc", signers[0])
    first = ledger.get_signature(DOC, signers[0])
    assert first.signed is True
    assert first.signed_at > 0
    assert first.metadata_ref == "sha256:abc"
    assert ledger.get_signature(DOC, signers[0]) == first
    assert ledger.get_signature(DOC, signers[1]).signed is False


def test_identity_comparison_is_case_insensitive(ledger, creator, signers):
    ledger.create_document(DOC, signers, creator)
    ledger.sign_document(DOC, "", signers[0].lower())
    assert ledger.get_signature(DOC, signers[0]).signed is True


def test_sign_by_outsider_is_rejected_without_state_change(ledger, creator, signers):
    ledger.create_document(DOC, signers, creator)
    outsider = Account.create().address

    assert reject_reason(ledger.sign_document, DOC, "", outsider) is RejectReason.NOT_AUTHORIZED
    assert all(not ledger.get_signature(DOC, s).signed for s in signers)
    assert ledger.head_position() == 1


def test_signature_of_never_required_signer_is_zero_valued(ledger, creator, signers):
    ledger.create_document(DOC, signers, creator)
    record = ledger.get_signature(DOC, Account.create().address)
    assert (record.signed, record.signed_at, record.metadata_ref) == (False, 0, "")
    assert record.required is False


def test_second_signature_is_rejected_and_state_unchanged(ledger, creator, signers):
    ledger.create_document(DOC, signers, creator)
    ledger.sign_document(DOC, "first", signers[0])
    after_first = ledger.get_signature(DOC, signers[0])
    head = ledger.head_position()

    assert reject_reason(ledger.sign_document, DOC, "second", signers[0]) is RejectReason.ALREADY_SIGNED
    assert ledger.get_signature(DOC, signers[0]) == after_first
    assert ledger.head_position() == head


def test_missing_document_reads_and_writes(ledger, signers):
    missing = sha(b"never registered")
    assert reject_reason(ledger.sign_document, missing, "", signers[0]) is RejectReason.DOCUMENT_MISSING
    assert reject_reason(ledger.is_fully_signed, missing) is RejectReason.DOCUMENT_MISSING
    assert reject_reason(ledger.get_signature, missing, signers[0]) is RejectReason.DOCUMENT_MISSING
    assert reject_reason(ledger.get_document_signers, missing) is RejectReason.DOCUMENT_MISSING

    verification = ledger.verify_document_signature(missing, signers[0])
    assert verification.found is False
    assert verification.is_valid is False


def test_fully_signed_only_after_every_signer(ledger, creator, signers):
    ledger.create_document(DOC, signers, creator)
    assert ledger.is_fully_signed(DOC) is False

    ledger.sign_document(DOC, "", signers[1])
    assert ledger.is_fully_signed(DOC) is False

    ledger.sign_document(DOC, "", signers[0])
    assert ledger.is_fully_signed(DOC) is True


def test_revocation_blocks_signing_and_keeps_signatures(ledger, creator, signers):
    ledger.create_document(DOC, signers, creator)
    ledger.sign_document(DOC, "ref", signers[0])
    before = ledger.get_signature(DOC, signers[0])

    ledger.revoke_document(DOC, creator)

    assert ledger.get_document(DOC).active is False
    assert reject_reason(ledger.sign_document, DOC, "", signers[1]) is RejectReason.DOCUMENT_INACTIVE
    assert ledger.get_signature(DOC, signers[0]) == before

    verification = ledger.verify_document_signature(DOC, signers[0])
    assert verification.is_valid is True
    assert verification.document_active is False


def test_only_creator_can_revoke(ledger, creator, signers):
    ledger.create_document(DOC, signers, creator)
    assert reject_reason(ledger.revoke_document, DOC, signers[0]) is RejectReason.NOT_CREATOR
    assert ledger.get_document(DOC).active is True


def test_user_documents_in_creation_order(ledger, creator, signers):
    hashes = [sha(f"doc {i}".encode()) for i in range(3)]
    for document_hash in hashes:
        ledger.create_document(document_hash, signers, creator)
    ledger.create_document(sha(b"someone else"), signers, signers[0])

    assert ledger.get_user_documents(creator) == hashes
    assert ledger.get_user_documents(creator.lower()) == hashes
    assert ledger.get_user_documents("not-an-address") == []


def test_events_follow_ledger_order(ledger, creator, signers):
    ledger.create_document(DOC, signers, creator)
    ledger.sign_document(DOC, "", signers[0])
    ledger.revoke_document(DOC, creator)

    events = ledger.events_since(0)
    assert [e.kind for e in events] == ["DocumentCreated", "DocumentSigned", "DocumentRevoked"]
    assert [e.position for e in events] == [1, 2, 3]
    assert events[1].actor == signers[0]

    signed_only = ledger.events_since(0, kinds=[LedgerEventKind.DOCUMENT_SIGNED])
    assert [e.position for e in signed_only] == [2]
    assert ledger.events_since(3) == []


def test_mutation_over_gas_limit_is_rejected(ledger, creator, signers):
    reason = reject_reason(ledger.create_document, DOC, signers, creator, gas_limit=21_000)
    assert reason is RejectReason.OUT_OF_GAS
    assert ledger.head_position() == 0

    ledger.create_document(DOC, signers, creator)
    reason = reject_reason(ledger.sign_document, DOC, "", signers[0], gas_limit=1)
    assert reason is RejectReason.OUT_OF_GAS
    assert ledger.get_signature(DOC, signers[0]).signed is False


def test_sign_cost_grows_with_signer_slot():
    gas = GasSchedule()
    assert gas.sign_document_cost(DOC, "", 3) - gas.sign_document_cost(DOC, "", 0) == 3 * GasSchedule.SLOT_READ
    assert gas.sign_document_cost(DOC, "sha256:" + "a" * 64, 0) > gas.sign_document_cost(DOC, "", 0)


def test_format_ether():
    assert format_ether(100_000, 30) == "0.003"
    assert format_ether(0, 30) == "0"


def test_positions_stay_contiguous_across_rejections(ledger, creator, signers):
    ledger.create_document(DOC, signers, creator)
    reject_reason(ledger.create_document, DOC, signers, creator)
    reject_reason(ledger.sign_document, DOC, "", Account.create().address)
    reject_reason(ledger.sign_document, DOC, "", signers[0], gas_limit=1)
    ledger.sign_document(DOC, "", signers[0])
    reject_reason(ledger.revoke_document, DOC, signers[1])
    ledger.revoke_document(DOC, creator)

    assert [e.position for e in ledger.events_since(0)] == [1, 2, 3]
    assert ledger.session.get(LedgerHead, LedgerHead.HEAD_ID).position == 3


def test_mutations_lock_the_ledger_head(ledger):
    from sqlalchemy.dialects import postgresql

    sql = str(ledger._head_query().statement.compile(dialect=postgresql.dialect()))
    assert "FROM ledger_head" in sql
    assert sql.rstrip().endswith("FOR UPDATE")


def test_head_is_rebuilt_from_existing_entries(ledger, creator, signers):
    ledger.create_document(DOC, signers, creator)
    ledger.session.query(LedgerHead).delete()
    ledger.session.commit()

    receipt = ledger.sign_document(DOC, "", signers[0])
    assert receipt.position == 2


def test_racing_second_sign_is_rejected(session_factory, creator, signers):
    with session_factory() as first, session_factory() as second:
        ledger_a = SignatureLedger(first, clock=FakeClock())
        ledger_b = SignatureLedger(second, clock=FakeClock())
        ledger_a.create_document(DOC, signers, creator)

        # ledger_a reads the signer row while it is still unsigned
        assert ledger_a.get_signature(DOC, signers[0]).signed is False
        ledger_b.sign_document(DOC, "from b", signers[0])

        assert reject_reason(ledger_a.sign_document, DOC, "from a", signers[0]) is RejectReason.ALREADY_SIGNED
        assert ledger_b.get_signature(DOC, signers[0]).metadata_ref == "from b"
        assert [e.kind for e in ledger_b.events_since(0)] == ["DocumentCreated", "DocumentSigned"]
