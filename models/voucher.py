from datetime import datetime
from extensions import db

class VoucherType:
    PERCENTAGE = 'percentage'
    FIXED = 'fixed'

    ALL = (PERCENTAGE, FIXED)

class QualificationType:
    MANUAL = 'manual'        # 管理员手动分发优惠码
    AUTOMATIC = 'automatic'  # 所有用户可用
    TARGETED = 'targeted'    # 按条件筛选用户后发放

    ALL = (MANUAL, AUTOMATIC, TARGETED)

# 优惠券适用范围（分类/商品），仅记录，不参与折扣计算
voucher_category = db.Table(
    'voucher_category',
    db.Column('voucher_id', db.Integer, db.ForeignKey('voucher.id'), primary_key=True),
    db.Column('category_id', db.Integer, db.ForeignKey('category.id'), primary_key=True)
)

voucher_product = db.Table(
    'voucher_product',
    db.Column('voucher_id', db.Integer, db.ForeignKey('voucher.id'), primary_key=True),
    db.Column('product_id', db.Integer, db.ForeignKey('product.id'), primary_key=True)
)

class Voucher(db.Model):
    __tablename__ = 'voucher'

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    code = db.Column(db.String(64), unique=True, nullable=False, comment='优惠码')
    type = db.Column(db.String(20), nullable=False, comment='类型：percentage/fixed')
    value = db.Column(db.Float, nullable=False, comment='折扣百分比或固定金额')
    min_spend = db.Column(db.Float, nullable=False, default=0, comment='最低消费')
    expires_at = db.Column(db.DateTime, nullable=True, comment='过期时间，空表示永不过期')
    is_active = db.Column(db.Boolean, nullable=False, default=True, comment='是否激活')
    max_usage_per_user = db.Column(db.Integer, nullable=True, comment='每个用户最多使用次数，空表示不限')
    max_total_usage = db.Column(db.Integer, nullable=True, comment='总使用次数上限')
    total_usage = db.Column(db.Integer, nullable=False, default=0, comment='已使用次数，只在使用事务中递增')
    description = db.Column(db.Text, comment='描述')
    qualification_type = db.Column(db.String(20), nullable=False, default=QualificationType.MANUAL, comment='manual/automatic/targeted')
    criteria = db.Column(db.JSON(none_as_null=True), nullable=True, comment='定向发放条件')
    create_time = db.Column(db.DateTime, default=datetime.now, comment='创建时间')

    # 关联关系
    categories = db.relationship('Category', secondary=voucher_category, lazy='subquery')
    products = db.relationship('Product', secondary=voucher_product, lazy='subquery')
    usages = db.relationship('VoucherUsage', backref='voucher', lazy='dynamic')
    grants = db.relationship('UserVoucher', backref='voucher', lazy='dynamic')

    def is_expired(self, now=None) -> bool:
        now = now or datetime.now()
        return self.expires_at is not None and self.expires_at <= now

    def is_fully_redeemed(self) -> bool:
        return self.max_total_usage is not None and self.total_usage >= self.max_total_usage

    def is_valid(self, now=None) -> bool:
        return bool(self.is_active) and not self.is_expired(now) and not self.is_fully_redeemed()

    def __repr__(self):
        return f'<Voucher {self.code}>'

    def to_dict(self):
        return {
            'id': self.id,
            'code': self.code,
            'type': self.type,
            'value': self.value,
            'min_spend': self.min_spend,
            'expires_at': self.expires_at.isoformat() if self.expires_at else None,
            'is_active': self.is_active,
            'max_usage_per_user': self.max_usage_per_user,
            'max_total_usage': self.max_total_usage,
            'total_usage': self.total_usage,
            'description': self.description,
            'qualification_type': self.qualification_type,
            'criteria': self.criteria,
            'category_ids': [c.id for c in self.categories],
            'product_ids': [p.id for p in self.products]
        }

class UserVoucher(db.Model):
    """优惠券发放记录（定向发放/手动发放）"""
    __tablename__ = 'user_voucher'

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False, comment='用户ID')
    voucher_id = db.Column(db.Integer, db.ForeignKey('voucher.id'), nullable=False, comment='优惠券ID')
    is_redeemed = db.Column(db.Boolean, default=False, comment='是否已使用')
    redeemed_at = db.Column(db.DateTime, comment='使用时间')
    create_time = db.Column(db.DateTime, default=datetime.now, comment='发放时间')

    user = db.relationship('User', backref=db.backref('voucher_grants', lazy='dynamic'))

    __table_args__ = (db.UniqueConstraint('user_id', 'voucher_id', name='unique_user_voucher'),)

    def __repr__(self):
        return f'<UserVoucher {self.id}>'

class VoucherUsage(db.Model):
    """优惠券使用流水，只插入不修改；按 (voucher, user) 计数即为该用户的使用次数"""
    __tablename__ = 'voucher_usage'

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    voucher_id = db.Column(db.Integer, db.ForeignKey('voucher.id'), nullable=False, comment='优惠券ID')
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False, comment='用户ID')
    order_id = db.Column(db.Integer, db.ForeignKey('shop_order.id'), nullable=False, comment='订单ID')
    amount = db.Column(db.Float, nullable=False, comment='优惠金额')
    create_time = db.Column(db.DateTime, default=datetime.now, comment='使用时间')

    user = db.relationship('User')

    def __repr__(self):
        return f'<VoucherUsage {self.id}>'

    def to_dict(self):
        return {
            'id': self.id,
            'voucher_id': self.voucher_id,
            'user': {'id': self.user.id, 'name': self.user.name, 'email': self.user.email} if self.user else None,
            'order_id': self.order_id,
            'amount': self.amount,
            'create_time': self.create_time.isoformat() if self.create_time else None
        }
