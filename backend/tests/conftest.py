import os, sys, pytest
# Ensure the backend directory is on path so 'garage' and 'tests' can be imported
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)
from garage import create_app, get_db
from garage.models.authz import Base
# Import all model modules to ensure tables are registered before create_all
import garage.models.audit  # noqa: F401
import garage.models.worker  # noqa: F401
import garage.models.repair_order  # noqa: F401
import garage.models.repair_item  # noqa: F401

@pytest.fixture(scope='session', autouse=True)
def app_instance():
    os.environ['DATABASE_URL'] = 'sqlite+pysqlite:///:memory:'
    app = create_app({'TESTING': True, 'JWT_SECRET_KEY': 'test-secret-key-with-at-least-32-bytes'})
    # After app and blueprints are registered, ensure all tables exist
    with app.app_context():
        engine = get_db().get_bind()
        Base.metadata.create_all(engine)
    yield app

@pytest.fixture()
def app_context(app_instance):
    with app_instance.app_context():
        yield app_instance

@pytest.fixture()
def client(app_context):
    return app_context.test_client()
