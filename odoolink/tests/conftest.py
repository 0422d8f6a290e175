"""Shared pytest fixtures for odoolink tests."""
import pytest

from odoolink.connection.models import Session
from odoolink.executors.operations import OperationExecutor
from odoolink.tests.fakes import DB, PASSWORD, UID, FakeOdoo


@pytest.fixture
def odoo():
    return FakeOdoo()


@pytest.fixture
def session():
    return Session(database=DB, user_id=UID, password=PASSWORD, url="https://demo.odoo.com")


@pytest.fixture
def executor(odoo, session):
    return OperationExecutor(odoo, session)
