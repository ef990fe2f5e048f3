import secrets
import string
from datetime import datetime
from flask import current_app
from sqlalchemy import func, or_, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from models.order import Order
from models.product import Category, Product
from models.voucher import Voucher, UserVoucher, VoucherUsage, VoucherType, QualificationType
from services.errors import (VoucherError, InvalidVoucher, VoucherExhausted, UserLimitReached,
                             BelowMinimumSpend, PersistenceFailure)
from services.qualification_service import VoucherCriteria, assign_voucher_to_qualifying_users
from extensions import db

CODE_CHARACTERS = string.digits + string.ascii_uppercase

def _not_expired(now):
    return or_(Voucher.expires_at.is_(None), Voucher.expires_at > now)

def get_user_vouchers(user) -> list:
    """用户可用的优惠券：发放给该用户的 + 所有 automatic 类型的"""
    now = datetime.now()
    granted = Voucher.query.join(UserVoucher, UserVoucher.voucher_id == Voucher.id).filter(
        UserVoucher.user_id == user.id,
        Voucher.is_active.is_(True),
        _not_expired(now)
    ).all()
    public = Voucher.query.filter(
        Voucher.qualification_type == QualificationType.AUTOMATIC,
        Voucher.is_active.is_(True),
        _not_expired(now)
    ).all()

    vouchers = {}
    for voucher in granted + public:
        vouchers.setdefault(voucher.id, voucher)
    return list(vouchers.values())

# ---------------------------------------------------------------- 使用优惠券

def calculate_discount(voucher: Voucher, order_total: float) -> float:
    """折扣金额永远不超过订单金额"""
    if voucher.type == VoucherType.PERCENTAGE:
        discount = order_total * (voucher.value / 100)
    else:
        discount = voucher.value
    return round(min(discount, order_total), 2)

def _lock_active_voucher(code: str) -> Voucher:
    voucher = Voucher.query.filter(
        Voucher.code == code,
        Voucher.is_active.is_(True),
        _not_expired(datetime.now())
    ).with_for_update().populate_existing().first()
    if not voucher:
        raise InvalidVoucher()
    return voucher

def _check_capacity(voucher: Voucher):
    if voucher.is_fully_redeemed():
        raise VoucherExhausted()

def _check_user_limit(voucher: Voucher, user_id: int):
    if voucher.max_usage_per_user is None:
        return
    times_used = VoucherUsage.query.filter_by(voucher_id=voucher.id, user_id=user_id).count()
    if times_used >= voucher.max_usage_per_user:
        raise UserLimitReached()

def _check_min_spend(voucher: Voucher, order: Order):
    if order.total < (voucher.min_spend or 0):
        raise BelowMinimumSpend(f'该优惠券需要订单满 {voucher.min_spend:.2f} 才能使用')

def _claim_usage_slot(voucher: Voucher):
    """total_usage 原子 +1，上限已满时不更新任何行"""
    result = db.session.execute(
        update(Voucher)
        .where(Voucher.id == voucher.id)
        .where(or_(Voucher.max_total_usage.is_(None), Voucher.total_usage < Voucher.max_total_usage))
        .values(total_usage=Voucher.total_usage + 1)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise VoucherExhausted()

def _record_usage(voucher: Voucher, order: Order, discount: float):
    db.session.add(VoucherUsage(
        voucher_id=voucher.id,
        user_id=order.user_id,
        order_id=order.id,
        amount=discount
    ))
    grant = UserVoucher.query.filter_by(user_id=order.user_id, voucher_id=voucher.id).first()
    if grant and not grant.is_redeemed:
        grant.is_redeemed = True
        grant.redeemed_at = datetime.now()
    db.session.flush()

def apply_voucher_to_order(order: Order, voucher_code: str) -> dict:
    """对订单使用优惠码。

    校验（有效性、总次数、用户次数、最低消费）与写入（订单金额、使用流水、
    使用次数）在同一事务中完成；优惠券行和订单行在事务期间加锁。
    业务校验失败返回具体原因，数据库异常整体回滚并返回通用错误。
    """
    order_id = order.id
    try:
        voucher = _lock_active_voucher(voucher_code)
        order = Order.query.filter_by(id=order_id).with_for_update().populate_existing().one()

        _check_capacity(voucher)
        _check_user_limit(voucher, order.user_id)
        _check_min_spend(voucher, order)

        discount = calculate_discount(voucher, order.total)

        _claim_usage_slot(voucher)
        order.discount = discount
        order.voucher_code = voucher.code
        order.total = round(order.total - discount, 2)
        _record_usage(voucher, order, discount)

        db.session.commit()
    except VoucherError as e:
        db.session.rollback()
        return {'success': False, 'error': e.code, 'msg': e.msg}
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error(f'使用优惠券失败：order={order_id} code={voucher_code} error={e}')
        return {'success': False, 'error': PersistenceFailure.code, 'msg': PersistenceFailure.default_msg}

    return {
        'success': True,
        'msg': '优惠券使用成功',
        'discount_amount': discount,
        'new_total': order.total
    }

# ---------------------------------------------------------------- 创建优惠券

def _attach_scope(voucher: Voucher, data: dict):
    category_ids = data.get('category_ids') or []
    product_ids = data.get('product_ids') or []
    if category_ids:
        categories = Category.query.filter(Category.id.in_(category_ids)).all()
        if len(categories) != len(set(category_ids)):
            raise ValueError('部分分类不存在')
        voucher.categories = categories
    if product_ids:
        products = Product.query.filter(Product.id.in_(product_ids)).all()
        if len(products) != len(set(product_ids)):
            raise ValueError('部分商品不存在')
        voucher.products = products

def _build_voucher(data: dict, code: str, **overrides) -> Voucher:
    fields = {
        'code': code,
        'type': data['type'],
        'value': data['value'],
        'min_spend': data.get('min_spend') or 0,
        'expires_at': data.get('expires_at'),
        'is_active': data.get('is_active', True),
        'max_usage_per_user': data.get('max_usage_per_user', 1),
        'max_total_usage': data.get('max_total_usage'),
        'description': data.get('description'),
        'qualification_type': data.get('qualification_type') or QualificationType.MANUAL,
        'criteria': data.get('criteria')
    }
    fields.update(overrides)
    voucher = Voucher(**fields)
    _attach_scope(voucher, data)
    return voucher

def create_voucher(data: dict) -> dict:
    """管理员直接创建优惠券（data 已经过 utils.validator 校验）"""
    try:
        voucher = _build_voucher(data, data['code'])
        db.session.add(voucher)
        db.session.commit()
    except ValueError as e:
        db.session.rollback()
        return {'success': False, 'msg': str(e)}
    except IntegrityError:
        db.session.rollback()
        return {'success': False, 'msg': '优惠码已存在'}
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error(f'创建优惠券失败：{e}')
        return {'success': False, 'msg': '创建优惠券失败'}

    return {'success': True, 'msg': '优惠券创建成功', 'data': voucher}

def generate_random_code(length: int = 8) -> str:
    return ''.join(secrets.choice(CODE_CHARACTERS) for _ in range(length))

def _unique_code(prefix: str, length: int, taken: set) -> str:
    max_attempts = current_app.config.get('VOUCHER_CODE_MAX_ATTEMPTS', 10)
    for _ in range(max_attempts):
        code = prefix + generate_random_code(length)
        if code in taken:
            continue
        if Voucher.query.filter_by(code=code).first():
            continue
        return code
    raise PersistenceFailure(f'连续 {max_attempts} 次生成的优惠码均已存在，请增加 code_length')

def generate_bulk_vouchers(data: dict, quantity: int) -> dict:
    """批量生成同一配置的优惠券，优惠码为 prefix + code_length 位随机字母数字。

    任一张生成失败则整批回滚。
    """
    prefix = data.get('prefix') or ''
    length = data.get('code_length') or current_app.config.get('VOUCHER_CODE_LENGTH', 8)
    codes = []
    taken = set()

    try:
        for _ in range(quantity):
            code = _unique_code(prefix, length, taken)
            db.session.add(_build_voucher(data, code))
            taken.add(code)
            codes.append(code)
        db.session.commit()
    except PersistenceFailure as e:
        db.session.rollback()
        current_app.logger.error(f'批量生成优惠券失败，已回滚 {len(codes)} 张：{e}')
        return {'success': False, 'error': e.code, 'msg': e.msg}
    except ValueError as e:
        db.session.rollback()
        return {'success': False, 'error': 'invalid_data', 'msg': str(e)}
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error(f'批量生成优惠券失败，已回滚 {len(codes)} 张：{e}')
        return {'success': False, 'error': PersistenceFailure.code, 'msg': PersistenceFailure.default_msg}

    current_app.logger.info(f'批量生成优惠券 {quantity} 张，前缀 {prefix!r}')
    return {'success': True, 'msg': f'成功生成 {quantity} 张优惠券', 'voucher_codes': codes}

def schedule_voucher_distribution(data: dict) -> dict:
    """创建定向优惠券，assign_immediately 为真时立即按条件发放"""
    try:
        criteria = VoucherCriteria.from_dict(data.get('criteria'))
        voucher = _build_voucher(
            data, data['code'],
            is_active=True,
            qualification_type=QualificationType.TARGETED,
            criteria=criteria.to_dict()
        )
        db.session.add(voucher)
        db.session.commit()
    except ValueError as e:
        db.session.rollback()
        return {'success': False, 'msg': str(e)}
    except IntegrityError:
        db.session.rollback()
        return {'success': False, 'msg': '优惠码已存在'}
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error(f'创建定向优惠券失败：{e}')
        return {'success': False, 'msg': '创建定向优惠券失败'}

    assigned = 0
    if data.get('assign_immediately'):
        assigned = assign_voucher_to_qualifying_users(voucher)

    msg = '定向优惠券创建成功'
    if assigned:
        msg += f'，已发放给 {assigned} 位用户'
    return {'success': True, 'msg': msg, 'voucher_id': voucher.id, 'assigned': assigned}

def get_voucher_usage_stats(voucher_id: int):
    voucher = Voucher.query.get(voucher_id)
    if not voucher:
        return None

    total_discount = db.session.query(func.coalesce(func.sum(VoucherUsage.amount), 0)) \
        .filter(VoucherUsage.voucher_id == voucher.id).scalar()
    unique_users = db.session.query(func.count(func.distinct(VoucherUsage.user_id))) \
        .filter(VoucherUsage.voucher_id == voucher.id).scalar()
    recent = voucher.usages.order_by(VoucherUsage.create_time.desc(), VoucherUsage.id.desc()).limit(10).all()

    return {
        'code': voucher.code,
        'total_usage': voucher.total_usage,
        'max_total_usage': voucher.max_total_usage,
        'is_active': voucher.is_active,
        'expires_at': voucher.expires_at.isoformat() if voucher.expires_at else None,
        'total_discount_amount': round(float(total_discount), 2),
        'unique_users': unique_users,
        'recent_usages': [usage.to_dict() for usage in recent]
    }
