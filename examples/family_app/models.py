"""
Data models for the EmberORM family example.
"""

from __future__ import annotations

from emberorm.core import (
    AutoField,
    CascadeType,
    FetchType,
    GenerationType,
    ManyToOne,
    Model,
    OneToMany,
    StringField,
)

ID_GENERATOR = "ID_GENERATOR"


class Parent(Model):
    id = AutoField(strategy=GenerationType.TABLE, generator=ID_GENERATOR)
    name = StringField(max_length=120)
    children = OneToMany(
        "Child",
        mapped_by="parent",
        fetch=FetchType.LAZY,
        cascade=(CascadeType.PERSIST, CascadeType.DETACH, CascadeType.MERGE, CascadeType.REMOVE),
        orphan_removal=True,
    )


class Child(Model):
    id = AutoField(strategy=GenerationType.TABLE, generator=ID_GENERATOR)
    parent = ManyToOne(Parent, fetch=FetchType.LAZY, nullable=False)
    name = StringField(default="default", max_length=120)
