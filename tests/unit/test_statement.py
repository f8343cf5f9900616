import pytest
from dbhelper.exceptions import PreconditionError, ValidationError
from dbhelper.statement import SqlFragment, Statement


def test_statement_is_immutable():
    stmt = Statement('SELECT 1')
    assert stmt.args == ()
    assert str(stmt) == 'SELECT 1'
    with pytest.raises(AttributeError):
        stmt.sql = 'SELECT 2'


def test_fragment_counts_match():
    fragment = SqlFragment('WHERE a = ? AND b = %s', [1, 2])
    assert fragment.args == (1, 2)
    assert fragment


def test_fragment_count_mismatch():
    with pytest.raises(PreconditionError, match='SQL needs 2 but 1'):
        SqlFragment('WHERE a = ? AND b = ?', (1,))


def test_fragment_ignores_literal_placeholders():
    fragment = SqlFragment("WHERE note = '?' AND a = ?", (1,))
    assert fragment.args == (1,)


def test_fragment_list_argument_counts_once():
    fragment = SqlFragment('WHERE id IN (?)', ([1, 2, 3],))
    assert len(fragment.args) == 1


def test_precondition_is_value_error():
    """Callers catching ValueError see argument problems too."""
    with pytest.raises(ValueError):
        SqlFragment('WHERE a = ?')
    assert issubclass(PreconditionError, ValidationError)


class TestFragmentOf:

    def test_none_and_blank(self):
        assert SqlFragment.of(None) is None
        assert SqlFragment.of('   ') is None

    def test_args_without_sql(self):
        with pytest.raises(PreconditionError):
            SqlFragment.of(None, (1,))

    def test_string_with_args(self):
        fragment = SqlFragment.of('WHERE age > ?', (18,))
        assert fragment == SqlFragment('WHERE age > ?', (18,))

    def test_fragment_passes_through(self):
        fragment = SqlFragment('ORDER BY id')
        assert SqlFragment.of(fragment) is fragment

    def test_fragment_with_extra_args(self):
        with pytest.raises(PreconditionError):
            SqlFragment.of(SqlFragment('WHERE a = ?', (1,)), (2,))
