"""Unit tests for store cursors."""

from skiarea_clustering.repositories.cursors import MaterializedCursor, PagedCursor


def make_fetcher(items, calls):
    def fetch(offset, limit):
        calls.append((offset, limit))
        return items[offset : offset + limit]

    return fetch


def test_paged_cursor_reads_pages_lazily():
    """Test that pages are fetched on demand."""
    calls = []
    cursor = PagedCursor(make_fetcher(list(range(5)), calls), batch_size=2)

    assert calls == []
    assert cursor.next_batch() == [0, 1]
    assert calls == [(0, 2)]


def test_paged_cursor_batches():
    """Test batch iteration stops after a short page."""
    calls = []
    cursor = PagedCursor(make_fetcher(list(range(5)), calls), batch_size=2)

    assert list(cursor.batches()) == [[0, 1], [2, 3], [4]]
    assert cursor.next_batch() is None
    assert len(calls) == 3


def test_paged_cursor_exact_multiple_of_batch_size():
    """Test termination when the last page is full."""
    calls = []
    cursor = PagedCursor(make_fetcher(list(range(4)), calls), batch_size=2)

    assert cursor.all() == [0, 1, 2, 3]
    assert calls[-1] == (4, 2)


def test_materialized_cursor():
    """Test materialized enumeration."""
    cursor = MaterializedCursor(list(range(5)), batch_size=2)

    assert len(cursor) == 5
    assert cursor.next_batch() == [0, 1]
    assert cursor.all() == [2, 3, 4]
    assert cursor.next_batch() is None


def test_materialized_cursor_iteration():
    """Test flat iteration over all batches."""
    assert list(MaterializedCursor(["a", "b", "c"], batch_size=2)) == ["a", "b", "c"]
