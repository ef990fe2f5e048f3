from datetime import datetime, timedelta
import pytest
from sqlalchemy.exc import SQLAlchemyError
from extensions import db
from models.order import Order
from models.voucher import Voucher, UserVoucher, VoucherUsage
from services import voucher_service
from utils.validator import validate_voucher_create
from services.voucher_service import (apply_voucher_to_order, calculate_discount, get_user_vouchers,
                                      get_voucher_usage_stats, create_voucher)


def test_expired_voucher_is_never_valid(make_voucher):
    past = datetime.now() - timedelta(days=1)
    active = make_voucher(expires_at=past, is_active=True)
    inactive = make_voucher(expires_at=past, is_active=False)
    assert active.is_valid() is False
    assert inactive.is_valid() is False

    fresh = make_voucher(expires_at=datetime.now() + timedelta(days=1))
    assert fresh.is_valid() is True


def test_percentage_discount(make_user, make_order, make_voucher):
    user = make_user()
    order = make_order(user, total=200)
    make_voucher(code='TEN', type='percentage', value=10, min_spend=50)

    result = apply_voucher_to_order(order, 'TEN')
    assert result['success'] is True
    assert result['discount_amount'] == 20
    assert result['new_total'] == 180

    order = db.session.get(Order, order.id)
    assert order.total == 180
    assert order.discount == 20
    assert order.voucher_code == 'TEN'


def test_fixed_discount_never_exceeds_total(make_user, make_order, make_voucher):
    user = make_user()
    order = make_order(user, total=40)
    make_voucher(code='HUNDRED', type='fixed', value=100)

    result = apply_voucher_to_order(order, 'HUNDRED')
    assert result['success'] is True
    assert result['discount_amount'] == 40
    assert result['new_total'] == 0


def test_calculate_discount_rounds(make_voucher):
    voucher = make_voucher(type='percentage', value=10)
    assert calculate_discount(voucher, 33.33) == 3.33


@pytest.mark.parametrize('code', ['NOPE', 'OLD', 'OFF'])
def test_unusable_codes_are_invalid(code, make_user, make_order, make_voucher):
    make_voucher(code='OLD', expires_at=datetime.now() - timedelta(minutes=1))
    make_voucher(code='OFF', is_active=False)
    user = make_user()
    order = make_order(user, total=100)

    result = apply_voucher_to_order(order, code)
    assert result['success'] is False
    assert result['error'] == 'invalid_voucher'
    assert db.session.get(Order, order.id).total == 100


def test_below_minimum_spend(make_user, make_order, make_voucher):
    user = make_user()
    order = make_order(user, total=30)
    voucher = make_voucher(code='MIN50', min_spend=50)

    result = apply_voucher_to_order(order, 'MIN50')
    assert result['success'] is False
    assert result['error'] == 'below_minimum_spend'
    assert '50.00' in result['msg']
    assert db.session.get(Voucher, voucher.id).total_usage == 0


def test_per_user_cap(make_user, make_order, make_voucher):
    user = make_user()
    first = make_order(user, total=100)
    second = make_order(user, total=100)
    voucher = make_voucher(code='ONCE', max_usage_per_user=1)

    assert apply_voucher_to_order(first, 'ONCE')['success'] is True
    result = apply_voucher_to_order(second, 'ONCE')
    assert result['success'] is False
    assert result['error'] == 'user_limit_reached'
    assert VoucherUsage.query.filter_by(voucher_id=voucher.id, user_id=user.id).count() == 1
    assert db.session.get(Order, second.id).total == 100


def test_unlimited_per_user(make_user, make_order, make_voucher):
    user = make_user()
    voucher = make_voucher(code='ALWAYS', max_usage_per_user=None)
    for _ in range(3):
        assert apply_voucher_to_order(make_order(user, total=100), 'ALWAYS')['success'] is True
    assert db.session.get(Voucher, voucher.id).total_usage == 3


def test_total_capacity(make_user, make_order, make_voucher):
    voucher = make_voucher(code='SINGLE', max_total_usage=1)
    first = make_order(make_user(), total=100)
    second = make_order(make_user(), total=100)

    assert apply_voucher_to_order(first, 'SINGLE')['success'] is True
    result = apply_voucher_to_order(second, 'SINGLE')
    assert result['error'] == 'voucher_exhausted'
    assert db.session.get(Voucher, voucher.id).total_usage == 1


def test_capacity_holds_when_check_reads_stale_count(monkeypatch, make_user, make_order, make_voucher):
    # 模拟两个并发请求都通过了容量检查
    monkeypatch.setattr(voucher_service, '_check_capacity', lambda voucher: None)
    voucher = make_voucher(code='RACE', max_total_usage=1)
    first = make_order(make_user(), total=100)
    second = make_order(make_user(), total=100)

    results = [apply_voucher_to_order(first, 'RACE'), apply_voucher_to_order(second, 'RACE')]

    assert [r['success'] for r in results] == [True, False]
    assert results[1]['error'] == 'voucher_exhausted'
    assert db.session.get(Voucher, voucher.id).total_usage == 1
    assert db.session.get(Order, second.id).total == 100
    assert VoucherUsage.query.filter_by(voucher_id=voucher.id).count() == 1


def test_failed_usage_insert_rolls_back_everything(monkeypatch, make_user, make_order, make_voucher):
    def broken_record(voucher, order, discount):
        raise SQLAlchemyError('insert failed')

    monkeypatch.setattr(voucher_service, '_record_usage', broken_record)
    user = make_user()
    order = make_order(user, total=100)
    voucher = make_voucher(code='ATOMIC', type='fixed', value=10, max_total_usage=5)

    result = apply_voucher_to_order(order, 'ATOMIC')
    assert result == {
        'success': False,
        'error': 'persistence_failure',
        'msg': voucher_service.PersistenceFailure.default_msg
    }

    db.session.expire_all()
    order = db.session.get(Order, order.id)
    assert order.total == 100
    assert order.discount == 0
    assert order.voucher_code is None
    assert db.session.get(Voucher, voucher.id).total_usage == 0
    assert VoucherUsage.query.count() == 0


def test_grant_marked_redeemed(make_user, make_order, make_voucher):
    user = make_user()
    order = make_order(user, total=100)
    voucher = make_voucher(code='GIFT', qualification_type='targeted')
    db.session.add(UserVoucher(user_id=user.id, voucher_id=voucher.id))
    db.session.commit()

    assert apply_voucher_to_order(order, 'GIFT')['success'] is True
    grant = UserVoucher.query.filter_by(user_id=user.id, voucher_id=voucher.id).one()
    assert grant.is_redeemed is True
    assert grant.redeemed_at is not None


def test_get_user_vouchers(make_user, make_voucher):
    user = make_user()
    other = make_user()
    granted = make_voucher(code='MINE', qualification_type='targeted')
    make_voucher(code='THEIRS', qualification_type='targeted')
    public = make_voucher(code='EVERYONE', qualification_type='automatic')
    make_voucher(code='GONE', qualification_type='automatic', expires_at=datetime.now() - timedelta(days=1))
    make_voucher(code='HIDDEN', qualification_type='automatic', is_active=False)
    db.session.add(UserVoucher(user_id=user.id, voucher_id=granted.id))
    db.session.add(UserVoucher(user_id=other.id, voucher_id=public.id))
    db.session.commit()

    codes = sorted(v.code for v in get_user_vouchers(user))
    assert codes == ['EVERYONE', 'MINE']


def test_usage_stats(make_user, make_order, make_voucher):
    voucher = make_voucher(code='STATS', type='fixed', value=5, max_usage_per_user=None)
    alice = make_user()
    bob = make_user()
    for user in (alice, alice, bob):
        apply_voucher_to_order(make_order(user, total=50), 'STATS')

    stats = get_voucher_usage_stats(voucher.id)
    assert stats['total_usage'] == 3
    assert stats['unique_users'] == 2
    assert stats['total_discount_amount'] == 15
    assert len(stats['recent_usages']) == 3
    assert get_voucher_usage_stats(9999) is None


def test_create_voucher_duplicate_code(make_voucher):
    make_voucher(code='DUP')
    result = create_voucher({'code': 'DUP', 'type': 'fixed', 'value': 5})
    assert result['success'] is False
    assert result['msg'] == '优惠码已存在'


def test_create_voucher_unknown_category(app):
    result = create_voucher({'code': 'SCOPED', 'type': 'fixed', 'value': 5, 'category_ids': [42]})
    assert result['success'] is False
    assert Voucher.query.count() == 0


def test_null_per_user_limit_is_stored(app):
    check = validate_voucher_create({'code': 'NOLIMIT', 'type': 'fixed', 'value': 5, 'max_usage_per_user': None})
    assert check['valid']
    assert create_voucher(check['data'])['success'] is True

    db.session.expire_all()
    assert Voucher.query.filter_by(code='NOLIMIT').one().max_usage_per_user is None


def test_per_user_limit_defaults_to_one(app):
    check = validate_voucher_create({'code': 'DEFAULT', 'type': 'fixed', 'value': 5})
    create_voucher(check['data'])
    assert Voucher.query.filter_by(code='DEFAULT').one().max_usage_per_user == 1
