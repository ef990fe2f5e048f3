import itertools
from datetime import datetime
import pytest
from flask_jwt_extended import create_access_token
from app import create_app
from config import TestingConfig
from extensions import db
from models.user import User, Role
from models.product import Product, Category
from models.order import Order, OrderItem, OrderStatus
from models.voucher import Voucher
from utils.password_utils import encrypt_password

_seq = itertools.count(1)


@pytest.fixture
def app():
    app = create_app(TestingConfig)
    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_user(app):
    def _make_user(name=None, email=None, password='secret123', roles=('customer',), create_time=None):
        n = next(_seq)
        user = User(
            name=name or f'user{n}',
            email=email or f'user{n}@example.com',
            password=encrypt_password(password),
            create_time=create_time or datetime.now()
        )
        for role_name in roles:
            role = Role.query.filter_by(name=role_name).first() or Role(name=role_name)
            user.roles.append(role)
        db.session.add(user)
        db.session.commit()
        return user
    return _make_user


@pytest.fixture
def make_category(app):
    def _make_category(name='Drinks'):
        category = Category(name=name)
        db.session.add(category)
        db.session.commit()
        return category
    return _make_category


@pytest.fixture
def make_product(app):
    def _make_product(name=None, price=10.0, categories=()):
        product = Product(name=name or f'product{next(_seq)}', price=price)
        product.categories = list(categories)
        db.session.add(product)
        db.session.commit()
        return product
    return _make_product


@pytest.fixture
def make_order(app):
    def _make_order(user, total=100.0, status=OrderStatus.COMPLETED, products=(), create_time=None):
        order = Order(
            order_no=f'ORD{next(_seq):08d}',
            user_id=user.id,
            status=status,
            total=total,
            create_time=create_time or datetime.now()
        )
        for product in products:
            order.items.append(OrderItem(product_id=product.id, quantity=1, price=product.price))
        db.session.add(order)
        db.session.commit()
        return order
    return _make_order


@pytest.fixture
def make_voucher(app):
    def _make_voucher(code=None, **fields):
        values = {
            'type': 'percentage',
            'value': 10,
            'min_spend': 0,
            'is_active': True,
            'max_usage_per_user': 1,
            'qualification_type': 'manual'
        }
        values.update(fields)
        voucher = Voucher(code=code or f'CODE{next(_seq)}', **values)
        db.session.add(voucher)
        db.session.commit()
        return voucher
    return _make_voucher


@pytest.fixture
def auth_headers(app):
    def _auth_headers(user):
        token = create_access_token(identity=f'user:{user.id}')
        return {'Authorization': f'Bearer {token}'}
    return _auth_headers
