import pytest

from emberorm.adapters import ConstraintViolationError
from emberorm.core import CascadeType, FetchType, ManyToOne, Model, OneToMany, StringField
from emberorm.persistence import (
    DuplicateIdentityError,
    EntityState,
    EntityStateError,
    FlushMode,
    LazyInitializationError,
    SessionFactory,
    TransactionError,
    TransactionRequiredError,
    TransactionStatus,
    TransientReferenceError,
    is_initialized,
)


class Author(Model):
    name = StringField(nullable=False)
    books = OneToMany(
        "Book",
        mapped_by="author",
        cascade=(CascadeType.PERSIST, CascadeType.REMOVE, CascadeType.DETACH, CascadeType.REFRESH),
    )


class Book(Model):
    author = ManyToOne(Author, fetch=FetchType.LAZY, nullable=False)
    title = StringField(nullable=False)


class Imprint(Model):
    code = StringField(nullable=False, unique=True)


def make_factory(tmp_path, **kwargs):
    factory = SessionFactory(f"sqlite:///{tmp_path / 'session.db'}", models=[Author, Book, Imprint], **kwargs)
    factory.create_schema()
    return factory


def seed(factory, name="Ann", titles=("One",)):
    with factory.session() as session:
        author = Author(name=name)
        for title in titles:
            author.books.append(Book(author=author, title=title))
        session.persist(author)
    return author.id


def test_persist_cascades_and_assigns_keys_at_flush(tmp_path):
    factory = make_factory(tmp_path)
    with factory.session() as session:
        author = Author(name="Ann")
        book = Book(author=author, title="One")
        author.books.append(book)
        session.persist(author)

        assert session.contains(author)
        assert session.contains(book)
        assert author.id is None

        session.flush()
        assert author.id is not None
        assert book.id is not None

    with factory.session() as session:
        stored = session.find(Book, book.id)
        assert stored.title == "One"
        assert stored.author.id == author.id


def test_state_transitions(tmp_path):
    factory = make_factory(tmp_path)
    author_id = seed(factory)
    with factory.session() as session:
        fresh = Author(name="New")
        assert session.state_of(fresh) is EntityState.TRANSIENT
        session.persist(fresh)
        assert session.state_of(fresh) is EntityState.MANAGED
        session.detach(fresh)
        assert session.state_of(fresh) is EntityState.TRANSIENT

        author = session.find(Author, author_id)
        assert session.state_of(author) is EntityState.MANAGED
        session.detach(author)
        assert session.state_of(author) is EntityState.DETACHED
        assert not session.contains(author)

        again = session.find(Author, author_id)
        assert again is not author
        session.remove(again)
        assert session.state_of(again) is EntityState.REMOVED
        assert not session.contains(again)


def test_find_uses_identity_map(tmp_path):
    factory = make_factory(tmp_path)
    author_id = seed(factory)
    with factory.session() as session:
        first = session.find(Author, author_id)
        second = session.find(Author, str(author_id))
        assert first is second
        assert session.find(Author, 999) is None
        with pytest.raises(ValueError):
            session.find(Author, None)


def test_persist_detached_entity_is_rejected(tmp_path):
    factory = make_factory(tmp_path)
    author_id = seed(factory)
    with factory.session() as session:
        author = session.find(Author, author_id)
        session.detach(author)
        with pytest.raises(EntityStateError):
            session.persist(author)


def test_second_instance_with_managed_identity_is_rejected(tmp_path):
    factory = make_factory(tmp_path)
    author_id = seed(factory)
    with factory.session() as session:
        session.find(Author, author_id)
        with pytest.raises(DuplicateIdentityError):
            session.persist(Author(id=author_id, name="Clone"))


def test_changes_to_managed_entities_are_written_without_save(tmp_path):
    factory = make_factory(tmp_path)
    author_id = seed(factory)
    with factory.session() as session:
        author = session.find(Author, author_id)
        author.name = "Renamed"
        author.books.append(Book(author=author, title="Two"))

    with factory.session() as session:
        author = session.find(Author, author_id)
        assert author.name == "Renamed"
        assert sorted(book.title for book in author.books) == ["One", "Two"]


def test_unchanged_entities_are_not_updated(tmp_path):
    factory = make_factory(tmp_path)
    author_id = seed(factory)
    with factory.session() as session:
        author = session.find(Author, author_id)
        author.name = author.name
        session.flush()
        statements = [stat["sql"] for stat in session.query_stats()]
        assert not [sql for sql in statements if sql.startswith("UPDATE")]


def test_remove_cascades_to_unloaded_collection(tmp_path):
    factory = make_factory(tmp_path)
    author_id = seed(factory, titles=("One", "Two"))
    with factory.session() as session:
        author = session.find(Author, author_id)
        assert not is_initialized(author.books)
        session.remove(author)

        assert is_initialized(author.books)
        assert all(session.state_of(book) is EntityState.REMOVED for book in author.books)
        assert session.find(Author, author_id) is None

    with factory.session() as session:
        assert session.query(Author).count() == 0
        assert session.query(Book).count() == 0


def test_removing_pending_entity_cancels_insert(tmp_path):
    factory = make_factory(tmp_path)
    with factory.session() as session:
        author = Author(name="Short lived")
        session.persist(author)
        session.remove(author)
        assert session.state_of(author) is EntityState.TRANSIENT
        assert not session.has_pending_changes()
    with factory.session() as session:
        assert session.query(Author).count() == 0


def test_remove_detached_entity_is_rejected(tmp_path):
    factory = make_factory(tmp_path)
    author_id = seed(factory)
    with factory.session() as session:
        author = session.find(Author, author_id)
    with factory.session() as session:
        with pytest.raises(EntityStateError):
            session.remove(author)


def test_transient_reference_fails_flush(tmp_path):
    factory = make_factory(tmp_path)
    session = factory.open_session()
    session.begin()
    book = Book(author=Author(name="Ghost"), title="Orphaned")
    session.persist(book)
    with pytest.raises(TransientReferenceError):
        session.commit()
    assert not session.transaction_manager.is_active
    assert not session.contains(book)
    session.close()


def test_entities_stay_managed_across_commits(tmp_path):
    factory = make_factory(tmp_path)
    session = factory.open_session()
    with session.transaction():
        author = Author(name="Kept")
        session.persist(author)
    assert session.contains(author)
    with session.transaction():
        author.name = "Kept again"
    session.close()

    with factory.session() as other:
        assert other.find(Author, author.id).name == "Kept again"


def test_rollback_detaches_everything(tmp_path):
    factory = make_factory(tmp_path)
    session = factory.open_session()
    session.begin()
    author = Author(name="Temp")
    session.persist(author)
    session.flush()
    assert author.id is not None

    session.rollback()
    assert not session.contains(author)
    assert session.state_of(author) is EntityState.DETACHED
    assert len(session.identity_map) == 0

    session.begin()
    assert session.find(Author, author.id) is None
    session.rollback()
    session.close()


def test_context_manager_rolls_back_on_error(tmp_path):
    factory = make_factory(tmp_path)
    with pytest.raises(RuntimeError):
        with factory.session() as session:
            session.persist(Author(name="Never"))
            raise RuntimeError("boom")
    assert not session.is_open
    with factory.session() as session:
        assert session.query(Author).count() == 0


def test_clear_detaches_but_keeps_transaction(tmp_path):
    factory = make_factory(tmp_path)
    author_id = seed(factory)
    with factory.session() as session:
        author = session.find(Author, author_id)
        author.name = "Discarded"
        session.clear()
        assert not session.contains(author)
        assert session.transaction_manager.is_active
        assert session.find(Author, author_id).name == "Ann"


def test_refresh_restores_database_state(tmp_path):
    factory = make_factory(tmp_path)
    author_id = seed(factory)
    with factory.session() as session:
        author = session.find(Author, author_id)
        author.name = "Changed"
        session.refresh(author)
        assert author.name == "Ann"
        assert not session.change_tracker.is_dirty(author)

        session.execute('DELETE FROM "book"')
        session.execute('DELETE FROM "author" WHERE "id" = ?', (author_id,))
        with pytest.raises(EntityStateError):
            session.refresh(author)
        session.detach(author)


def test_refresh_requires_managed_entity(tmp_path):
    factory = make_factory(tmp_path)
    with factory.session() as session:
        with pytest.raises(EntityStateError):
            session.refresh(Author(name="Loose"))


def test_transaction_boundaries_are_enforced(tmp_path):
    factory = make_factory(tmp_path)
    session = factory.open_session()
    with pytest.raises(TransactionError):
        session.commit()
    with pytest.raises(TransactionError):
        session.rollback()
    with pytest.raises(TransactionRequiredError):
        session.flush()
    session.begin()
    with pytest.raises(TransactionError):
        session.begin()
    session.rollback()
    session.close()


def test_closed_session_rejects_operations(tmp_path):
    factory = make_factory(tmp_path)
    author_id = seed(factory)
    session = factory.open_session()
    session.begin()
    author = session.find(Author, author_id)
    session.close()
    session.close()

    assert not session.is_open
    assert not session.contains(author)
    with pytest.raises(EntityStateError):
        session.find(Author, author_id)
    with pytest.raises(EntityStateError):
        session.begin()


def test_lazy_collection_after_close_raises(tmp_path):
    factory = make_factory(tmp_path)
    author_id = seed(factory)
    with factory.session() as session:
        author = session.find(Author, author_id)
    books = author.books
    with pytest.raises(LazyInitializationError):
        len(books)
    assert not is_initialized(books)


def test_lazy_reference_after_close_raises(tmp_path):
    factory = make_factory(tmp_path)
    seed(factory)
    with factory.session() as session:
        book = session.query(Book).first()
        assert not is_initialized(book, "author")
    with pytest.raises(LazyInitializationError):
        book.author


def test_lazy_collection_of_detached_owner_raises(tmp_path):
    factory = make_factory(tmp_path)
    author_id = seed(factory)
    with factory.session() as session:
        author = session.find(Author, author_id)
        session.detach(author)
        with pytest.raises(LazyInitializationError):
            list(author.books)


def test_auto_flush_before_query(tmp_path):
    factory = make_factory(tmp_path)
    with factory.session() as session:
        session.persist(Author(name="Visible"))
        assert session.query(Author).filter(name="Visible").count() == 1


def test_commit_flush_mode_defers_writes(tmp_path):
    factory = make_factory(tmp_path, flush_mode=FlushMode.COMMIT)
    with factory.session() as session:
        session.persist(Author(name="Deferred"))
        assert session.query(Author).count() == 0
    with factory.session() as session:
        assert session.query(Author).count() == 1


def test_query_stats_can_be_reset(tmp_path):
    factory = make_factory(tmp_path)
    with factory.session() as session:
        session.execute('SELECT COUNT(*) FROM "author"')
        assert any("COUNT(*)" in stat["sql"] for stat in session.query_stats())
        session.reset_query_stats()
        assert session.query_stats() == []


def stored_codes(factory):
    with factory.session() as session:
        return sorted(imprint.code for imprint in session.query(Imprint).all())


def test_constraint_violation_at_commit_rolls_back(tmp_path):
    factory = make_factory(tmp_path)
    session = factory.open_session()
    session.begin()
    first = Imprint(code="A")
    second = Imprint(code="A")
    session.persist(first)
    session.persist(second)

    with pytest.raises(ConstraintViolationError):
        session.commit()
    assert session.transaction_manager.status is TransactionStatus.ROLLED_BACK
    assert not session.contains(first)
    assert not session.contains(second)
    assert EntityState.DETACHED in (session.state_of(first), session.state_of(second))
    assert len(session.identity_map) == 0
    session.close()

    assert stored_codes(factory) == []


def test_failed_flush_rolls_back_and_cannot_be_committed(tmp_path):
    factory = make_factory(tmp_path)
    session = factory.open_session()
    session.begin()
    written = Imprint(code="A")
    session.persist(written)
    session.persist(Imprint(code="A"))

    with pytest.raises(ConstraintViolationError):
        session.flush()
    assert session.transaction_manager.status is TransactionStatus.ROLLED_BACK
    assert not session.contains(written)
    assert not session.has_pending_changes()

    session.clear()
    with pytest.raises(TransactionError):
        session.commit()

    with session.transaction():
        session.persist(Imprint(code="A"))
    session.close()

    assert stored_codes(factory) == ["A"]


def test_bulk_flush_and_clear_keeps_session_bounded(tmp_path):
    factory = make_factory(tmp_path)
    with factory.session() as session:
        for i in range(300):
            session.persist(Imprint(code=f"bulk-{i}"))
            if (i + 1) % 100 == 0:
                session.flush()
                session.clear()
                assert len(session.identity_map) == 0
        assert all(len(stat.fingerprints) <= 10 for stat in session.performance.stats.values())
    assert len(stored_codes(factory)) == 300
