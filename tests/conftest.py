import pytest
import fakeredis

from livestage import create_app
from livestage.database import db_session, get_session, create_all, drop_all
from livestage.models import ProductSet
from livestage.services.pubsub_service import get_pubsub
from livestage.services.catalog_service import create_brand, create_product
from livestage.services.product_set_service import create_product_set_with_products


@pytest.fixture(scope='session')
def app():
    """Create application instance for testing."""
    app = create_app('config.TestConfig')
    return app


@pytest.fixture(scope='function', autouse=True)
def app_context(app):
    """Every test runs inside an application context."""
    with app.app_context():
        yield


@pytest.fixture(scope='function')
def redis_client(app):
    """Fresh in-memory Redis wired into the pub/sub service."""
    client = fakeredis.FakeRedis(server=fakeredis.FakeServer(), decode_responses=True)
    get_pubsub().init_app(app, client=client)
    yield client
    get_pubsub().init_app(app)


@pytest.fixture(scope='function', autouse=True)
def database(app, redis_client):
    """Create a clean schema for each test."""
    db_session.remove()
    drop_all()
    create_all()
    yield
    db_session.remove()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def session():
    """Create database session for testing."""
    session = get_session()
    yield session
    session.rollback()
    session.close()


@pytest.fixture(scope='function')
def brand(session):
    """Create test brand."""
    return create_brand(session, 'Acme Jewelry', 'acme')


@pytest.fixture(scope='function')
def other_brand(session):
    """Second brand for isolation tests."""
    return create_brand(session, 'Other Brand', 'other')


@pytest.fixture(scope='function')
def products(session, brand):
    """
    Three products: one image, two images, no images.
    """
    return [
        create_product(session, brand.id, {
            'name': 'Gold Hoops', 'sku': 'GH-1', 'original_price_cents': 4900,
            'talking_points_md': '- 14k gold'
        }, ['/img/hoops-1.jpg']),
        create_product(session, brand.id, {
            'name': 'Pearl Necklace', 'sku': 'PN-1', 'original_price_cents': 12900,
            'sale_price_cents': 9900
        }, ['/img/pearl-1.jpg', '/img/pearl-2.jpg']),
        create_product(session, brand.id, {
            'name': 'Silver Ring', 'sku': 'SR-1', 'original_price_cents': 2900
        }),
    ]


@pytest.fixture(scope='function')
def product_set(session, brand, products):
    """Product set with the three products at positions 1..3 (entry 2 has 2 images)."""
    return create_product_set_with_products(
        session, brand.id, {'name': 'Friday Live', 'notes': 'Mention free shipping'},
        [p.id for p in products]
    )


@pytest.fixture(scope='function')
def product_set_id(product_set):
    return product_set.id


@pytest.fixture(scope='function')
def entry_ids(session, product_set_id):
    """Entry ids in position order."""
    product_set = session.get(ProductSet, product_set_id)
    return [entry.id for entry in product_set.entries]
