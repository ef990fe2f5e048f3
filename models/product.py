from datetime import datetime
from extensions import db

# 商品-分类 多对多
product_category = db.Table(
    'product_category',
    db.Column('product_id', db.Integer, db.ForeignKey('product.id'), primary_key=True),
    db.Column('category_id', db.Integer, db.ForeignKey('category.id'), primary_key=True)
)

class Category(db.Model):
    __tablename__ = 'category'

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    name = db.Column(db.String(100), nullable=False, comment='分类名称')

    def __repr__(self):
        return f'<Category {self.name}>'

class Product(db.Model):
    __tablename__ = 'product'

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    name = db.Column(db.String(200), nullable=False, comment='商品名称')
    price = db.Column(db.Float, nullable=False, default=0, comment='单价')
    # 以下三个字段只能通过 services.rating_service 修改
    rating_count = db.Column(db.Integer, nullable=False, default=0, comment='评分人数')
    average_rating = db.Column(db.Float, nullable=False, default=0, comment='平均评分')
    bayesian_rating = db.Column(db.Float, nullable=False, default=0, comment='贝叶斯平均评分')
    create_time = db.Column(db.DateTime, default=datetime.now, comment='创建时间')

    # 关联关系
    categories = db.relationship('Category', secondary=product_category, lazy='subquery', backref='products')
    ratings = db.relationship('ProductRating', backref='product', lazy='dynamic', cascade='all, delete-orphan')

    def __repr__(self):
        return f'<Product {self.name}>'

    def rating_summary(self):
        return {
            'average_rating': self.average_rating,
            'bayesian_rating': self.bayesian_rating,
            'rating_count': self.rating_count
        }
