from vault_saga.core.services.intent_store_service import IntentStoreService
from vault_saga.core.domain.enums.saga_enums import OperationKind
from conftest import ACTOR, make_intent

KEY = (ACTOR, OperationKind.DEPOSIT)


def test_take_is_destructive():
    store = IntentStoreService()
    intent = make_intent()
    store.park(KEY, intent)

    assert store.take(KEY) == intent
    assert store.take(KEY) is None
    assert len(store) == 0


def test_park_overwrites_and_returns_replaced():
    store = IntentStoreService()
    first = make_intent(amount=1, saga_id="a")
    second = make_intent(amount=2, saga_id="b")

    assert store.park(KEY, first) is None
    assert store.park(KEY, second) == first
    assert store.take(KEY).amount == 2


def test_keys_are_independent_per_kind():
    store = IntentStoreService()
    store.park(KEY, make_intent())
    store.park((ACTOR, OperationKind.WITHDRAW), make_intent(OperationKind.WITHDRAW))

    store.clear(KEY)

    assert store.peek(KEY) is None
    assert store.peek((ACTOR, OperationKind.WITHDRAW)) is not None
