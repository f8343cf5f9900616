import datetime
import decimal
import sqlite3

from dbhelper.mapper import fill_entity, to_dict, to_entity, to_keyed, to_scalar
from dbhelper.meta import get_table_meta
from tests.fixtures.entities import Event, Membership, Person, User


def test_to_entity():
    user = to_entity(get_table_meta(User), {'id': 1, 'name': 'a', 'age': None})
    assert user == User(id=1, name='a', age=None)


def test_to_entity_case_insensitive_and_partial():
    user = to_entity(get_table_meta(User), {'ID': 2, 'Name': 'b', 'extra': 'ignored'})
    assert user == User(id=2, name='b')


def test_to_entity_renamed_columns():
    person = to_entity(get_table_meta(Person), {'id': 1, 'name': 'Ann', 'age': 40})
    assert person.person_id == 1
    assert person.full_name == 'Ann'


def test_to_entity_none():
    assert to_entity(get_table_meta(User), None) is None


def test_values_coerced_to_field_types():
    """SQLite hands back text dates, integer booleans and floats."""
    event = to_entity(get_table_meta(Event), {
        'id': 1,
        'title': 'launch',
        'happened_on': '2024-01-02',
        'created_at': '2024-01-02T03:04:05',
        'active': 1,
        'amount': 12.5,
    })
    assert event.happened_on == datetime.date(2024, 1, 2)
    assert event.created_at == datetime.datetime(2024, 1, 2, 3, 4, 5)
    assert event.active is True
    assert event.amount == decimal.Decimal('12.5')
    assert event.tags == []


def test_fill_entity():
    user = User(id=1)
    fill_entity(get_table_meta(User), user, {'id': 1, 'name': 'a', 'age': 3})
    assert user == User(id=1, name='a', age=3)


def test_to_scalar():
    assert to_scalar({'count': 3}) == 3
    assert to_scalar({'d': '2024-01-02'}, datetime.date) == datetime.date(2024, 1, 2)
    assert to_scalar({'n': 4.0}, int | None) == 4
    assert to_scalar(None) is None


def test_to_dict_from_sqlite_row():
    cn = sqlite3.connect(':memory:')
    cn.row_factory = sqlite3.Row
    row = cn.execute('select 1 as a, 2 as b').fetchone()
    assert to_dict(row) == {'a': 1, 'b': 2}
    cn.close()


class TestToKeyed:

    def test_caller_order_and_misses(self):
        rows = [{'id': 3, 'name': 'c'}, {'id': 1, 'name': 'a'}]
        result = to_keyed(get_table_meta(User), rows, [1, 2, 3])
        assert list(result) == [1, 3]
        assert result[3].name == 'c'

    def test_text_keys_match_int_column(self):
        rows = [{'id': 1, 'name': 'a'}]
        result = to_keyed(get_table_meta(User), rows, ['1', ' 2 '])
        assert list(result) == [1]

    def test_composite_keys_are_tuples(self):
        rows = [{'group_id': 1, 'user_id': 2, 'role': 'x'}]
        keys = [{'group_id': 9, 'user_id': 9}, {'group_id': 1, 'user_id': 2}]
        result = to_keyed(get_table_meta(Membership), rows, keys)
        assert list(result) == [(1, 2)]
        assert result[(1, 2)].role == 'x'
