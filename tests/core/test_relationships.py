import pytest

from emberorm.core import (
    CascadeType,
    FetchType,
    GenerationType,
    ManyToOne,
    Model,
    OneToMany,
    StringField,
    dependency_rank,
    sort_by_dependency,
)
from emberorm.core.fields import AutoField, FieldError
from emberorm.core.relations import RelationshipError, normalize_cascade, relation_registry
from emberorm.persistence import PersistentList, is_initialized


class Library(Model):
    name = StringField()
    shelves = OneToMany(
        "Shelf",
        mapped_by="library",
        cascade=CascadeType.ALL,
        orphan_removal=True,
    )


class Shelf(Model):
    library = ManyToOne(Library, fetch=FetchType.LAZY)
    label = StringField()


class Volume(Model):
    shelf = ManyToOne(Shelf)
    title = StringField()


def test_string_targets_resolve_once_target_is_defined():
    edge = relation_registry.edge(Library, "shelves")
    assert edge.target is Shelf
    assert edge.is_collection
    assert edge.mapped_by == "library"
    assert Library._meta.collections["shelves"].mapped_field() is Shelf._meta.fields["library"]


def test_cascade_all_expands_to_every_operation():
    edge = relation_registry.edge(Library, "shelves")
    for operation in (CascadeType.PERSIST, CascadeType.MERGE, CascadeType.REMOVE, CascadeType.DETACH, CascadeType.REFRESH):
        assert edge.cascades(operation)
    assert CascadeType.ALL not in normalize_cascade(CascadeType.ALL)


def test_orphan_removal_implies_remove_cascade():
    class Folder(Model):
        pages = OneToMany("FolderPage", mapped_by="folder", orphan_removal=True)

    class FolderPage(Model):
        folder = ManyToOne(Folder)

    edge = relation_registry.edge(Folder, "pages")
    assert edge.cascades(CascadeType.REMOVE)
    assert not edge.cascades(CascadeType.PERSIST)


def test_many_to_one_defaults():
    field = Shelf._meta.fields["library"]
    assert field.column_name() == "library_id"
    assert field.fetch is FetchType.LAZY
    assert not relation_registry.edge(Shelf, "library").cascade
    assert Volume._meta.fields["shelf"].fetch is FetchType.EAGER


def test_many_to_one_assignment_tracks_key():
    library = Library(name="City")
    shelf = Shelf(library=library, label="A")
    assert shelf.library is library
    assert Shelf._meta.fields["library"].fk_value(shelf) is None

    library.id = 7
    assert Shelf._meta.fields["library"].fk_value(shelf) == 7
    assert shelf.to_dict()["library"] == 7


def test_many_to_one_rejects_wrong_type():
    with pytest.raises(TypeError):
        Volume(shelf=Library(name="wrong"))


def test_non_nullable_reference_rejects_none():
    class Stamp(Model):
        owner = ManyToOne(Library, nullable=False)

    stamp = Stamp(owner=Library(name="x"))
    with pytest.raises(ValueError):
        stamp.owner = None


def test_new_entity_collection_is_initialized_list():
    library = Library(name="City")
    assert isinstance(library.shelves, PersistentList)
    assert is_initialized(library.shelves)
    assert is_initialized(library, "shelves")
    library.shelves.append(Shelf(label="A"))
    assert len(library.shelves) == 1
    library.shelves = [Shelf(label="B"), Shelf(label="C")]
    assert [s.label for s in library.shelves] == ["B", "C"]


def test_collection_constructor_argument():
    shelf = Shelf(label="A")
    library = Library(name="City", shelves=[shelf])
    assert list(library.shelves) == [shelf]


def test_dependency_rank_orders_referenced_tables_first():
    assert dependency_rank(Library) == 0
    assert dependency_rank(Shelf) == 1
    assert dependency_rank(Volume) == 2
    assert sort_by_dependency([Volume, Shelf, Library, Shelf]) == [Library, Shelf, Volume]


def test_unknown_mapped_by_is_rejected():
    with pytest.raises(RelationshipError):

        class Cabinet(Model):
            drawers = OneToMany(Library, mapped_by="cabinet")


def test_table_generation_requires_generator_name():
    with pytest.raises(FieldError):
        AutoField(strategy=GenerationType.TABLE)
    field = AutoField(strategy="table", generator="SEQ", allocation_size=10)
    assert field.strategy is GenerationType.TABLE
    assert field.allocation_size == 10
