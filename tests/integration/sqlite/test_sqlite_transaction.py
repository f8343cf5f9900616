"""
Transaction behaviour against a file-based SQLite database.

A second connection checks what other sessions can see.
"""
import dbhelper
import pytest
from tests.fixtures.entities import User


@pytest.fixture
def observer(sqlite_file_db):
    _, path = sqlite_file_db
    db = dbhelper.connect(drivername='sqlite', database=path)
    yield db
    db.close()


def test_autocommit_outside_transaction(sqlite_file_db, observer):
    db, _ = sqlite_file_db
    db.insert(User(name='A'))
    assert observer.get_count(User) == 1


def test_commit(sqlite_file_db, observer):
    db, _ = sqlite_file_db
    with db.transaction():
        db.insert(User(name='A'))
        db.insert(User(name='B'))
        assert db.cn.in_transaction
    assert not db.cn.in_transaction
    assert observer.get_count(User) == 2


def test_rollback_on_exception(sqlite_file_db, observer):
    db, _ = sqlite_file_db
    with pytest.raises(ZeroDivisionError):
        with db.transaction():
            db.insert(User(name='A'))
            1 / 0
    assert observer.get_count(User) == 0
    assert db.get_count(User) == 0


def test_rollback_only(sqlite_file_db, observer, caplog):
    db, _ = sqlite_file_db
    with db.transaction():
        db.insert(User(name='A'))
        db.rollback()
        db.insert(User(name='B'))
    assert 'rollback-only' in caplog.text
    assert db.get_count(User) == 0


def test_autocommit_restored_after_transaction(sqlite_file_db, observer):
    db, _ = sqlite_file_db
    with db.transaction():
        db.insert(User(name='A'))
    db.insert(User(name='B'))
    assert observer.get_count(User) == 2


def test_nested_transaction_rejected(sqlite_file_db):
    db, _ = sqlite_file_db
    with db.transaction():
        with pytest.raises(RuntimeError, match='Nested'):
            db.transaction()
