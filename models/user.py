from datetime import datetime
from extensions import db

# 用户-角色 多对多
user_role = db.Table(
    'user_role',
    db.Column('user_id', db.Integer, db.ForeignKey('user.id'), primary_key=True),
    db.Column('role_id', db.Integer, db.ForeignKey('role.id'), primary_key=True)
)

class Role(db.Model):
    __tablename__ = 'role'

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    name = db.Column(db.String(50), unique=True, nullable=False, comment='角色名：admin/super-admin/customer等')

    def __repr__(self):
        return f'<Role {self.name}>'

class User(db.Model):
    __tablename__ = 'user'

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    name = db.Column(db.String(100), nullable=False, comment='姓名')
    email = db.Column(db.String(255), unique=True, nullable=False, comment='邮箱')
    password = db.Column(db.String(128), nullable=False, comment='加密密码')
    is_active = db.Column(db.Boolean, default=True, comment='账户是否激活')
    create_time = db.Column(db.DateTime, default=datetime.now, comment='注册时间')

    # 关联关系
    roles = db.relationship('Role', secondary=user_role, lazy='subquery', backref='users')
    orders = db.relationship('Order', backref='user', lazy=True)
    ratings = db.relationship('ProductRating', backref='user', lazy=True)

    def has_role(self, names) -> bool:
        """names 可以是单个角色名或角色名列表"""
        if isinstance(names, str):
            names = [names]
        return any(role.name in names for role in self.roles)

    def is_admin(self) -> bool:
        return self.has_role(['admin', 'super-admin'])

    def __repr__(self):
        return f'<User {self.email}>'

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'email': self.email,
            'roles': [role.name for role in self.roles],
            'create_time': self.create_time.isoformat() if self.create_time else None
        }
