from flask import Blueprint, request, jsonify
from services.auth_service import user_login

auth_bp = Blueprint('auth', __name__)

# 登录
@auth_bp.post('/login')
def login():
    data = request.get_json(silent=True) or {}
    email = data.get('email')
    password = data.get('password')

    if not email or not password:
        return jsonify({'code': 400, 'msg': '请输入邮箱和密码'}), 400

    result = user_login(email, password)
    if result.get('error'):
        return jsonify({'code': 401, 'msg': result['error']}), 401

    return jsonify({'code': 200, 'msg': '登录成功', 'data': result})
