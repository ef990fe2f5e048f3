from datetime import datetime
from extensions import db

class ProductRating(db.Model):
    __tablename__ = 'product_rating'

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    product_id = db.Column(db.Integer, db.ForeignKey('product.id'), nullable=False, comment='商品ID')
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False, comment='用户ID')
    rating = db.Column(db.Integer, nullable=False, comment='评分1-5')
    review = db.Column(db.Text, comment='评价内容')
    verified_purchase = db.Column(db.Boolean, default=False, comment='是否已购买')
    create_time = db.Column(db.DateTime, default=datetime.now, comment='评价时间')
    update_time = db.Column(db.DateTime, default=datetime.now, onupdate=datetime.now, comment='更新时间')

    # 同一用户对同一商品只能评一次
    __table_args__ = (db.UniqueConstraint('product_id', 'user_id', name='unique_product_user_rating'),)

    def __repr__(self):
        return f'<ProductRating {self.id}>'

    def to_dict(self):
        return {
            'id': self.id,
            'product_id': self.product_id,
            'user': {'id': self.user.id, 'name': self.user.name} if self.user else None,
            'rating': self.rating,
            'review': self.review,
            'verified_purchase': self.verified_purchase,
            'create_time': self.create_time.isoformat() if self.create_time else None
        }
