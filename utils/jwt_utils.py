from functools import wraps
from flask import jsonify
from flask_jwt_extended import create_access_token, verify_jwt_in_request, get_jwt_identity

def generate_token(user_id: int) -> str:
    """生成JWT Token，identity 格式为 "user:<id>"（Flask-JWT-Extended 要求 subject 为字符串）"""
    return create_access_token(identity=f'user:{user_id}')

def get_current_user():
    """从 JWT 中解析当前用户，解析失败返回 None"""
    from models.user import User

    identity = get_jwt_identity()
    if not identity or ':' not in identity:
        return None
    user_type, user_id = identity.split(':', 1)
    if user_type != 'user' or not user_id.isdigit():
        return None
    user = User.query.get(int(user_id))
    if not user or not user.is_active:
        return None
    return user

def api_login_required(f):
    """要求登录，当前用户作为 current_user 关键字参数传入"""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        verify_jwt_in_request()
        user = get_current_user()
        if not user:
            return jsonify({'code': 401, 'msg': '未登录'}), 401
        return f(*args, current_user=user, **kwargs)
    return decorated_function

def admin_required(f):
    """要求管理员（admin/super-admin）角色"""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        verify_jwt_in_request()
        user = get_current_user()
        if not user:
            return jsonify({'code': 401, 'msg': '未登录'}), 401
        if not user.is_admin():
            return jsonify({'code': 403, 'msg': '权限错误，需要管理员权限'}), 403
        return f(*args, current_user=user, **kwargs)
    return decorated_function
