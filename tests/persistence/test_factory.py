import logging

import pytest

from emberorm.adapters import AdapterConfigurationError, ConnectionConfig, SQLiteAdapter
from emberorm.adapters.base import DATABASE_URL_ENV
from emberorm.core import Model, StringField
from emberorm.persistence import FlushMode, SessionFactory


class Gizmo(Model):
    label = StringField()


def test_factory_opens_independent_sessions(tmp_path):
    factory = SessionFactory(f"sqlite:///{tmp_path / 'factory.db'}", models=[Gizmo])
    factory.create_schema()
    with factory.session() as session:
        gizmo = Gizmo(label="a")
        session.persist(gizmo)

    with factory.session() as first, factory.session() as second:
        assert first is not second
        assert first.find(Gizmo, gizmo.id) is not second.find(Gizmo, gizmo.id)
        assert first.find(Gizmo, gizmo.id) == second.find(Gizmo, gizmo.id)


def test_factory_reads_url_from_environment(tmp_path, monkeypatch):
    monkeypatch.setenv(DATABASE_URL_ENV, f"sqlite:///{tmp_path / 'env.db'}")
    factory = SessionFactory(models=[Gizmo])
    assert factory.config.source == DATABASE_URL_ENV


def test_factory_without_configuration_fails(monkeypatch):
    monkeypatch.delenv(DATABASE_URL_ENV, raising=False)
    with pytest.raises(AdapterConfigurationError):
        SessionFactory()


def test_factory_passes_settings_to_sessions(tmp_path):
    created = []

    def adapter_factory():
        adapter = SQLiteAdapter()
        created.append(adapter)
        return adapter

    factory = SessionFactory(
        ConnectionConfig(url=f"sqlite:///{tmp_path / 'settings.db'}"),
        adapter_factory=adapter_factory,
        flush_mode="commit",
        performance_threshold=3,
    )
    factory.register(Gizmo, Gizmo)
    assert factory.models == [Gizmo]

    session = factory.open_session()
    assert session.adapter is created[0]
    assert session.flush_mode is FlushMode.COMMIT
    assert session.performance.n_plus_one_threshold == 3
    session.close()
    assert not created[0].is_connected


def test_drop_schema_removes_tables(tmp_path):
    factory = SessionFactory(f"sqlite:///{tmp_path / 'drop.db'}", models=[Gizmo])
    factory.create_schema()
    factory.drop_schema()
    with factory.session() as session:
        row = session.execute("SELECT name FROM sqlite_master WHERE type = 'table' AND name = 'gizmo'").fetchone()
        assert row is None


def test_closed_factory_refuses_sessions(tmp_path):
    factory = SessionFactory(f"sqlite:///{tmp_path / 'closed.db'}")
    factory.close()
    assert not factory.is_open
    with pytest.raises(RuntimeError):
        factory.open_session()


def test_unresolved_associations_are_reported(tmp_path, caplog):
    from emberorm.core import ManyToOne

    class Dangling(Model):
        target = ManyToOne("NoSuchModel")

    caplog.set_level(logging.WARNING, logger="emberorm.persistence.factory")
    SessionFactory(f"sqlite:///{tmp_path / 'dangling.db'}")
    assert any("NoSuchModel" in rec.message for rec in caplog.records)
