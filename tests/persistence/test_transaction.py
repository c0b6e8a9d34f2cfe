import pytest

from emberorm.adapters import AdapterError
from emberorm.persistence import TransactionError, TransactionManager, TransactionStatus


class RecordingAdapter:
    def __init__(self, fail_rollback=False):
        self.calls = []
        self.fail_rollback = fail_rollback

    def begin(self):
        self.calls.append("begin")

    def commit(self):
        self.calls.append("commit")

    def rollback(self):
        self.calls.append("rollback")
        if self.fail_rollback:
            raise AdapterError("connection lost")


def test_begin_commit_cycle():
    adapter = RecordingAdapter()
    manager = TransactionManager(adapter)
    assert manager.status is TransactionStatus.INACTIVE
    manager.begin()
    assert manager.is_active
    manager.commit()
    assert manager.status is TransactionStatus.COMMITTED
    assert adapter.calls == ["begin", "commit"]


def test_nested_begin_is_rejected():
    manager = TransactionManager(RecordingAdapter())
    manager.begin()
    with pytest.raises(TransactionError):
        manager.begin()


def test_commit_and_rollback_require_active_transaction():
    manager = TransactionManager(RecordingAdapter())
    with pytest.raises(TransactionError):
        manager.commit()
    with pytest.raises(TransactionError):
        manager.rollback()


def test_failed_rollback_still_ends_transaction():
    manager = TransactionManager(RecordingAdapter(fail_rollback=True))
    manager.begin()
    with pytest.raises(AdapterError):
        manager.rollback()
    assert manager.status is TransactionStatus.ROLLED_BACK


def test_transaction_context_rolls_back_on_error():
    adapter = RecordingAdapter()
    manager = TransactionManager(adapter)
    with pytest.raises(KeyError):
        with manager.transaction():
            raise KeyError("boom")
    with manager.transaction():
        pass
    assert adapter.calls == ["begin", "rollback", "begin", "commit"]
