"""
CRUD round trips against an in-memory SQLite database.
"""
import pytest
from dbhelper.exceptions import NullKeyValueError, PreconditionError
from tests.fixtures.entities import Account, Membership, Note, Person, User


def seed_users(db, count=5):
    users = [User(name=f'user{i}', age=20 + i) for i in range(count)]
    for user in users:
        db.insert(user)
    return users


class TestInsert:

    def test_insert_writes_back_key(self, sqlite_db):
        user = User(name='A')
        assert sqlite_db.insert(user) == 1
        assert user.id is not None
        assert sqlite_db.get_by_key(User, user.id) == User(id=user.id, name='A', age=None)

    def test_insert_renamed_columns(self, sqlite_db):
        person = Person(full_name='Ann', age=40)
        sqlite_db.insert(person)
        assert sqlite_db.get_by_key(Person, person.person_id).full_name == 'Ann'

    def test_insert_without_key(self, sqlite_db):
        assert sqlite_db.insert(Note(body='hello')) == 1
        assert sqlite_db.get_all(Note) == [Note(body='hello')]

    def test_insert_where_not_exist(self, sqlite_db):
        first = User(name='A', age=1)
        assert sqlite_db.insert_where_not_exist(first, 'WHERE name = ?', 'A') == 1
        assert first.id is not None

        second = User(name='A', age=2)
        assert sqlite_db.insert_where_not_exist(second, 'WHERE name = ?', 'A') == 0
        assert second.id is None
        assert sqlite_db.get_count(User) == 1

    def test_insert_with_null_where_not_exist(self, sqlite_db):
        account = Account(id=1, owner='x', version=1)
        assert sqlite_db.insert_with_null_where_not_exist(account, 'owner = ?', 'x') == 1
        assert sqlite_db.insert_with_null_where_not_exist(account, 'owner = ?', 'x') == 0
        assert sqlite_db.get_by_key(Account, 1).balance is None

    def test_batch_insert(self, sqlite_db):
        users = [User(name='A'), User(name='B', age=2), User(name=None, age=3)]
        assert sqlite_db.insert_with_null_in_one_sql(users) == 3
        rows = sqlite_db.get_all(User, 'ORDER BY id')
        assert [(u.name, u.age) for u in rows] == [('A', None), ('B', 2), (None, 3)]

    def test_duplicate_key_propagates_driver_error(self, sqlite_db):
        sqlite_db.insert(Account(id=1, owner='x', version=1))
        with pytest.raises(Exception, match='UNIQUE') as excinfo:
            sqlite_db.insert(Account(id=1, owner='y', version=1))
        assert any(note.startswith('SQL: INSERT INTO') for note in excinfo.value.__notes__)


class TestUpdate:

    def test_update_skips_null_fields(self, sqlite_db):
        user = User(name='A', age=1)
        sqlite_db.insert(user)

        assert sqlite_db.update(User(id=user.id, age=2)) == 1
        assert sqlite_db.get_by_key(User, user.id) == User(id=user.id, name='A', age=2)

    def test_update_with_null_clears_fields(self, sqlite_db):
        user = User(name='A', age=1)
        sqlite_db.insert(user)

        assert sqlite_db.update_with_null(User(id=user.id, age=2)) == 1
        assert sqlite_db.get_by_key(User, user.id) == User(id=user.id, name=None, age=2)

    def test_compare_and_set(self, sqlite_db):
        sqlite_db.insert(Account(id=1, owner='x', balance=10, version=1))

        assert sqlite_db.update(Account(id=1, balance=20, version=2), 'WHERE version = ?', 1) == 1
        assert sqlite_db.update(Account(id=1, balance=30, version=2), 'WHERE version = ?', 1) == 0
        assert sqlite_db.get_by_key(Account, 1).balance == 20

    def test_update_list(self, sqlite_db):
        users = seed_users(sqlite_db, 3)
        for user in users:
            user.age = 99
        assert sqlite_db.update(users) == 3
        assert sqlite_db.get_count(User, 'WHERE age = ?', 99) == 3

    def test_update_missing_row(self, sqlite_db):
        assert sqlite_db.update(User(id=404, age=1)) == 0

    def test_update_null_key(self, sqlite_db):
        with pytest.raises(NullKeyValueError):
            sqlite_db.update(User(name='A'))


class TestDelete:

    def test_delete_by_key(self, sqlite_db):
        users = seed_users(sqlite_db, 2)
        assert sqlite_db.delete_by_key(users[0]) == 1
        assert sqlite_db.delete_by_key(User, users[1].id) == 1
        assert sqlite_db.delete_by_key(User, users[1].id) == 0
        assert sqlite_db.get_count(User) == 0

    def test_delete_by_composite_key(self, sqlite_db):
        sqlite_db.insert(Membership(group_id=1, user_id=2, role='admin'))
        assert sqlite_db.delete_by_key(Membership, {'group_id': 1, 'user_id': 2}) == 1

    def test_delete_with_predicate(self, sqlite_db):
        seed_users(sqlite_db, 5)
        assert sqlite_db.delete(User, 'WHERE age >= ?', 23) == 2
        assert sqlite_db.get_count(User) == 3

    def test_delete_without_where_keeps_rows(self, sqlite_db):
        seed_users(sqlite_db, 2)
        with pytest.raises(PreconditionError):
            sqlite_db.delete(User, 'age > ?', 0)
        assert sqlite_db.get_count(User) == 2


class TestLookups:

    def test_user_scenario(self, sqlite_db):
        before = sqlite_db.get_count(User)
        user = User(name='A')
        sqlite_db.insert(user)
        assert sqlite_db.get_by_key(User, user.id).age is None

        sqlite_db.update(User(id=user.id, age=30))
        assert sqlite_db.get_by_key(User, user.id) == User(id=user.id, name='A', age=30)
        assert sqlite_db.get_count(User) == before + 1

    def test_fill_by_key(self, sqlite_db):
        user = User(name='A', age=5)
        sqlite_db.insert(user)

        target = User(id=user.id)
        assert sqlite_db.fill_by_key(target) is True
        assert target == user
        assert sqlite_db.fill_by_key(User(id=404)) is False

    def test_get_by_key_list_order(self, sqlite_db):
        users = seed_users(sqlite_db, 3)
        ids = [users[2].id, 404, users[0].id]
        result = sqlite_db.get_by_key_list(User, ids)
        assert list(result) == [users[2].id, users[0].id]
        assert result[users[0].id].name == 'user0'

    def test_get_by_key_list_composite(self, sqlite_db):
        sqlite_db.insert(Membership(group_id=1, user_id=1, role='a'))
        sqlite_db.insert(Membership(group_id=1, user_id=2, role='b'))
        result = sqlite_db.get_by_key_list(Membership, [(1, 2), (5, 5), (1, 1)])
        assert list(result) == [(1, 2), (1, 1)]
        assert result[(1, 1)].role == 'a'

    def test_get_by_key_list_text_keys(self, sqlite_db):
        user = seed_users(sqlite_db, 1)[0]
        key = str(user.id)
        assert sqlite_db.get_by_key(User, key) == user
        assert sqlite_db.get_by_key_list(User, [key]) == {user.id: user}

    def test_get_one(self, sqlite_db):
        seed_users(sqlite_db, 3)
        assert sqlite_db.get_one(User, 'WHERE age > ? ORDER BY age DESC', 20).name == 'user2'
        assert sqlite_db.get_one(User, 'WHERE age > ?', 100) is None

    def test_in_list(self, sqlite_db):
        seed_users(sqlite_db, 4)
        users = sqlite_db.get_all(User, 'WHERE name IN (?) ORDER BY id', ['user1', 'user3'])
        assert [u.name for u in users] == ['user1', 'user3']

    def test_literal_placeholder_left_alone(self, sqlite_db):
        sqlite_db.insert(User(name='what?', age=1))
        assert sqlite_db.get_count(User, "WHERE name = 'what?' AND age = ?", 1) == 1


class TestPaging:

    def test_pages_cover_all_rows(self, sqlite_db):
        seed_users(sqlite_db, 7)
        everything = sqlite_db.get_all(User, 'ORDER BY id')

        collected = []
        for page_number in (1, 2, 3):
            page = sqlite_db.get_page(User, page_number, 3, 'ORDER BY id')
            assert page.total == 7
            collected.extend(page.data)
        assert collected == everything
        assert [len(sqlite_db.get_page(User, n, 3, 'ORDER BY id')) for n in (1, 2, 3, 4)] == [3, 3, 1, 0]

    def test_page_with_filter(self, sqlite_db):
        seed_users(sqlite_db, 6)
        page = sqlite_db.get_page(User, 1, 2, 'WHERE age >= ? ORDER BY id', 22)
        assert page.total == 4
        assert [u.age for u in page.data] == [22, 23]

    def test_page_without_count(self, sqlite_db):
        seed_users(sqlite_db, 3)
        page = sqlite_db.get_page_without_count(User, 2, 2, 'ORDER BY id')
        assert page.total is None
        assert [u.name for u in page] == ['user2']
