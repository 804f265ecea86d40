import pytest
import os
import sys

sys.path.append(os.path.dirname(os.path.dirname(__file__)))

from adaptive_volume.app import app, limiter

if not app.config.get('JWT_SECRET_KEY'):
    app.config['JWT_SECRET_KEY'] = 'test-secret-key'


@pytest.fixture()
def client():
    app.config.update(TESTING=True)
    limiter.enabled = False
    with app.test_client() as client:
        yield client
