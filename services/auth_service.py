from models.user import User, Role
from utils.password_utils import encrypt_password, verify_password
from utils.jwt_utils import generate_token
from extensions import db

def user_register(data: dict, roles=('customer',)):
    """用户注册，检查邮箱是否已注册"""
    if User.query.filter_by(email=data['email']).first():
        return {'error': '邮箱已注册'}

    new_user = User(
        name=data['name'],
        email=data['email'],
        password=encrypt_password(data['password'])
    )
    for name in roles:
        role = Role.query.filter_by(name=name).first()
        if not role:
            role = Role(name=name)
            db.session.add(role)
        new_user.roles.append(role)
    db.session.add(new_user)
    db.session.commit()
    return new_user

def user_login(email: str, password: str):
    """用户登录，返回具体错误信息"""
    user = User.query.filter_by(email=email).first()
    if not user:
        return {'error': '用户不存在'}
    if not verify_password(password, user.password):
        return {'error': '密码错误'}
    if not user.is_active:
        return {'error': '账户已停用'}
    return {
        'token': generate_token(user.id),
        'user_info': user.to_dict()
    }
