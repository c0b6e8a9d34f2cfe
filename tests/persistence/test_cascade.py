from emberorm.core import CascadeType, ManyToOne, Model, OneToMany, StringField
from emberorm.persistence import CascadeEngine, EntityState, PersistentList, SessionFactory


class Company(Model):
    name = StringField()
    departments = OneToMany("Department", mapped_by="company", cascade=CascadeType.ALL, orphan_removal=True)
    offices = OneToMany("Office", mapped_by="company")


class Department(Model):
    company = ManyToOne(Company)
    name = StringField()


class Office(Model):
    company = ManyToOne(Company)
    city = StringField()


def make_factory(tmp_path):
    factory = SessionFactory(f"sqlite:///{tmp_path / 'cascade.db'}", models=[Company, Department, Office])
    factory.create_schema()
    return factory


def seed_company(factory, departments=("R&D", "Sales")):
    with factory.session() as session:
        company = Company(name="Acme")
        company.departments = [Department(company=company, name=name) for name in departments]
        session.persist(company)
    return company.id


def test_cascade_only_follows_edges_with_the_operation():
    company = Company(name="Acme")
    department = Department(company=company, name="R&D")
    office = Office(company=company, city="Oslo")
    company.departments.append(department)
    company.offices.append(office)

    visited = []
    CascadeEngine().cascade(CascadeType.PERSIST, company, visited.append)
    assert visited == [department]

    visited.clear()
    CascadeEngine().cascade(CascadeType.PERSIST, department, visited.append)
    assert visited == []


def test_targets_do_not_load_unless_forced():
    company = Company(name="Acme")
    loaded = Department(name="stored")
    queued = Department(name="queued")
    calls = []

    def loader():
        calls.append(1)
        return [loaded]

    company._related_cache["departments"] = PersistentList.unloaded(company, "departments", loader)
    company.departments.append(queued)

    engine = CascadeEngine()
    edge = engine.registry.edge(Company, "departments")
    assert engine.targets(company, edge) == [queued]
    assert calls == []
    assert engine.targets(company, edge, force=True) == [loaded, queued]
    assert calls == [1]


def test_orphan_is_deleted_at_flush(tmp_path):
    factory = make_factory(tmp_path)
    company_id = seed_company(factory)
    with factory.session() as session:
        company = session.find(Company, company_id)
        orphan = company.departments.pop(0)
        session.flush()
        assert session.state_of(orphan) is not EntityState.MANAGED

    with factory.session() as session:
        assert [d.name for d in session.find(Company, company_id).departments] == ["Sales"]


def test_element_moved_back_before_flush_is_kept(tmp_path):
    factory = make_factory(tmp_path)
    company_id = seed_company(factory)
    with factory.session() as session:
        company = session.find(Company, company_id)
        department = company.departments.pop(0)
        company.departments.append(department)

    with factory.session() as session:
        assert len(session.find(Company, company_id).departments) == 2


def test_detach_cascades_over_loaded_collection(tmp_path):
    factory = make_factory(tmp_path)
    company_id = seed_company(factory)
    with factory.session() as session:
        company = session.find(Company, company_id)
        departments = list(company.departments)
        session.detach(company)
        assert not session.contains(company)
        assert not any(session.contains(d) for d in departments)


def test_refresh_cascades_and_discards_collection_changes(tmp_path):
    factory = make_factory(tmp_path)
    company_id = seed_company(factory)
    with factory.session() as session:
        company = session.find(Company, company_id)
        first = company.departments[0]
        first.name = "Renamed"
        company.departments.pop()

        session.refresh(company)
        assert first.name == "R&D"
        assert not company.departments.is_initialized
        assert [d.name for d in company.departments] == ["R&D", "Sales"]
        assert company.departments[0] is first
