from emberorm.core import ManyToOne, Model, StringField
from emberorm.persistence import ConcurrentModificationError, SessionFactory, UnitOfWork


class Country(Model):
    name = StringField()


class City(Model):
    country = ManyToOne(Country)
    name = StringField()


class Street(Model):
    city = ManyToOne(City)
    name = StringField()


def test_inserts_are_ordered_parents_first():
    uow = UnitOfWork()
    street, city, country = Street(name="Main"), City(name="Bern"), Country(name="CH")
    for instance in (street, city, country):
        uow.register_new(instance)
    assert uow.ordered_inserts() == [country, city, street]


def test_deletes_are_ordered_children_first():
    uow = UnitOfWork()
    country, city, street = Country(id=1), City(id=1), Street(id=1)
    for instance in (country, city, street):
        uow.register_deleted(instance)
    assert uow.ordered_deletes() == [street, city, country]


def test_deleting_pending_insert_cancels_both():
    uow = UnitOfWork()
    city = City(name="Bern")
    uow.register_new(city)
    assert uow.register_deleted(city) is False
    assert not uow.is_new(city)
    assert not uow.is_deleted(city)
    assert not uow.has_pending()


def test_conflicts_count_as_pending_and_are_cleared():
    uow = UnitOfWork()
    uow.record_conflict(ConcurrentModificationError(City, 1))
    assert uow.has_pending()
    uow.clear()
    assert uow.conflicts == []
    assert uow.counts() == {"new": 0, "deleted": 0}


def test_flush_writes_graph_in_dependency_order(tmp_path):
    factory = SessionFactory(f"sqlite:///{tmp_path / 'uow.db'}", models=[Street, City, Country])
    factory.create_schema()
    with factory.session() as session:
        country = Country(name="CH")
        city = City(country=country, name="Bern")
        street = Street(city=city, name="Main")
        session.persist(street)
        session.persist(city)
        session.persist(country)
        session.flush()
        assert street.city.country.id == country.id
        inserts = [stat["sql"] for stat in session.query_stats() if stat["sql"].startswith("INSERT")]
        assert [sql.split('"')[1] for sql in inserts] == ["country", "city", "street"]

    with factory.session() as session:
        session.remove(session.find(Country, country.id))
        session.remove(session.find(Street, street.id))
        session.remove(session.find(City, city.id))

    with factory.session() as session:
        assert session.query(Street).count() == 0
