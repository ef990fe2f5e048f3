from dataclasses import dataclass, asdict
from datetime import datetime, timedelta
from typing import List, Optional
from flask import current_app
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from models.user import User, Role
from models.order import Order, OrderItem
from models.product import product_category
from models.voucher import Voucher, UserVoucher, QualificationType
from services.notification_service import notify_voucher_granted
from extensions import db

@dataclass
class VoucherCriteria:
    """定向优惠券的筛选条件，所有条件为 AND 关系，未设置的条件不参与筛选"""
    min_spend: Optional[float] = None
    time_period: Optional[int] = None  # 天；不设置时按全部历史订单计算消费额
    min_orders: Optional[int] = None
    product_ids: Optional[List[int]] = None
    category_ids: Optional[List[int]] = None
    registration_days: Optional[int] = None
    user_type: Optional[str] = None
    send_email: bool = False

    @classmethod
    def from_dict(cls, data: dict) -> 'VoucherCriteria':
        if data is None:
            return cls()
        if not isinstance(data, dict):
            raise ValueError('criteria 必须是对象')

        def number(key, cast):
            value = data.get(key)
            if value is None:
                return None
            if isinstance(value, bool):
                raise ValueError(f'{key} 必须是数字')
            try:
                value = cast(value)
            except (TypeError, ValueError):
                raise ValueError(f'{key} 必须是数字')
            if value < 0:
                raise ValueError(f'{key} 不能为负数')
            return value

        def id_list(key):
            value = data.get(key)
            if value is None:
                return None
            if not isinstance(value, list):
                raise ValueError(f'{key} 必须是数组')
            try:
                return [int(v) for v in value]
            except (TypeError, ValueError):
                raise ValueError(f'{key} 只能包含整数ID')

        user_type = data.get('user_type')
        if user_type is not None and not isinstance(user_type, str):
            raise ValueError('user_type 必须是字符串')

        return cls(
            min_spend=number('min_spend', float),
            time_period=number('time_period', int),
            min_orders=number('min_orders', int),
            product_ids=id_list('product_ids'),
            category_ids=id_list('category_ids'),
            registration_days=number('registration_days', int),
            user_type=user_type,
            send_email=bool(data.get('send_email', False))
        )

    def to_dict(self) -> dict:
        return {k: v for k, v in asdict(self).items() if v is not None}

def build_qualifying_query(criteria: VoucherCriteria, now: datetime = None):
    """根据条件构造用户查询"""
    now = now or datetime.now()
    query = User.query

    if criteria.min_spend is not None:
        spend = select(Order.user_id)
        if criteria.time_period is not None:
            spend = spend.where(Order.create_time >= now - timedelta(days=criteria.time_period))
        spend = spend.group_by(Order.user_id).having(func.sum(Order.total) >= criteria.min_spend)
        query = query.filter(User.id.in_(spend))

    if criteria.min_orders is not None:
        order_count = select(Order.user_id) \
            .group_by(Order.user_id) \
            .having(func.count(Order.id) >= criteria.min_orders)
        query = query.filter(User.id.in_(order_count))

    if criteria.product_ids is not None:
        bought = select(Order.user_id) \
            .join(OrderItem, OrderItem.order_id == Order.id) \
            .where(OrderItem.product_id.in_(criteria.product_ids))
        query = query.filter(User.id.in_(bought))

    if criteria.category_ids is not None:
        bought_in_category = select(Order.user_id) \
            .join(OrderItem, OrderItem.order_id == Order.id) \
            .join(product_category, product_category.c.product_id == OrderItem.product_id) \
            .where(product_category.c.category_id.in_(criteria.category_ids))
        query = query.filter(User.id.in_(bought_in_category))

    if criteria.registration_days is not None:
        query = query.filter(User.create_time <= now - timedelta(days=criteria.registration_days))

    if criteria.user_type is not None:
        query = query.filter(User.roles.any(Role.name == criteria.user_type))

    return query.order_by(User.id)

def assign_voucher_to_qualifying_users(voucher: Voucher) -> int:
    """为满足条件的用户发放定向优惠券，返回本次新发放的人数。

    单个用户发放失败只记录日志并继续处理其他用户。
    """
    if not voucher.criteria:
        return 0

    criteria = VoucherCriteria.from_dict(voucher.criteria)
    voucher_id = voucher.id
    voucher_code = voucher.code
    user_ids = [user.id for user in build_qualifying_query(criteria).all()]

    count = 0
    for user_id in user_ids:
        try:
            exists = UserVoucher.query.filter_by(user_id=user_id, voucher_id=voucher_id).first()
            if exists:
                continue
            db.session.add(UserVoucher(user_id=user_id, voucher_id=voucher_id))
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            current_app.logger.error(f'发放优惠券失败：voucher={voucher_code} user={user_id} error={e}')
            continue

        count += 1
        if criteria.send_email:
            notify_voucher_granted(User.query.get(user_id), Voucher.query.get(voucher_id))

    return count

def process_voucher_assignments() -> int:
    """处理所有激活的定向优惠券，返回总发放人数"""
    vouchers = Voucher.query.filter(
        Voucher.qualification_type == QualificationType.TARGETED,
        Voucher.is_active.is_(True),
        Voucher.criteria.isnot(None)
    ).all()
    current_app.logger.info(f'找到 {len(vouchers)} 个定向优惠券待处理')

    total_assigned = 0
    for voucher in vouchers:
        try:
            assigned = assign_voucher_to_qualifying_users(voucher)
        except ValueError as e:
            current_app.logger.error(f'优惠券 {voucher.code} 条件无效：{e}')
            continue
        total_assigned += assigned
        current_app.logger.info(f'优惠券 {voucher.code} 新发放 {assigned} 人')

    current_app.logger.info(f'定向优惠券发放完成，共发放 {total_assigned} 人')
    return total_assigned
