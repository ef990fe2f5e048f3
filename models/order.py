from datetime import datetime
from extensions import db

class OrderStatus:
    PENDING = 'pending'
    PROCESSING = 'processing'
    COMPLETED = 'completed'
    CANCELLED = 'cancelled'

class Order(db.Model):
    __tablename__ = 'shop_order'  # order 是保留关键字

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    order_no = db.Column(db.String(32), unique=True, nullable=False, comment='订单号')
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False, comment='用户ID')
    status = db.Column(db.String(20), nullable=False, default=OrderStatus.PENDING, comment='状态：pending/processing/completed/cancelled')
    total = db.Column(db.Float, nullable=False, comment='应付金额（已扣除优惠）')
    discount = db.Column(db.Float, default=0, nullable=False, comment='优惠金额')
    voucher_code = db.Column(db.String(64), nullable=True, comment='使用的优惠码')
    create_time = db.Column(db.DateTime, default=datetime.now, comment='创建时间')

    # 关联关系
    items = db.relationship('OrderItem', backref='order', lazy=True, cascade='all, delete-orphan')

    def __repr__(self):
        return f'<Order {self.order_no}>'

    def to_dict(self):
        return {
            'id': self.id,
            'order_no': self.order_no,
            'user_id': self.user_id,
            'status': self.status,
            'total': self.total,
            'discount': self.discount,
            'voucher_code': self.voucher_code,
            'create_time': self.create_time.isoformat() if self.create_time else None
        }

class OrderItem(db.Model):
    __tablename__ = 'shop_order_item'

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    order_id = db.Column(db.Integer, db.ForeignKey('shop_order.id'), nullable=False, comment='订单ID')
    product_id = db.Column(db.Integer, db.ForeignKey('product.id'), nullable=False, comment='商品ID')
    quantity = db.Column(db.Integer, nullable=False, comment='数量')
    price = db.Column(db.Float, nullable=False, comment='购买时单价')

    product = db.relationship('Product')

    def __repr__(self):
        return f'<OrderItem {self.id}>'
