"""Declarative base shared by the execution state and result cache tables."""

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    pass
