"""Shared fixtures: a Flask test client over an in-memory SQLite database."""

import os

os.environ['DATABASE_URL'] = 'sqlite://'

import pytest

from app import app as flask_app, db


@pytest.fixture
def app():
    flask_app.config['TESTING'] = True
    with flask_app.app_context():
        db.create_all()
        yield flask_app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def sample_notes():
    return (
        "📅Sept 2025📅\n"
        "3000 : Alex dj 05-11/05-12* 913\n"
        "1500 : Maria Unit4B\n"
        "💰 Total: 4500\n"
        "📅Oct 2025📅\n"
        "2000 : Bob 01-01/01-02• 555\n"
    )
