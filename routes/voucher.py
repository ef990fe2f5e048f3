from flask import Blueprint, request, jsonify
from models.order import Order
from services.voucher_service import get_user_vouchers, apply_voucher_to_order
from services.errors import PersistenceFailure
from utils.jwt_utils import api_login_required

voucher_bp = Blueprint('voucher', __name__)

# 当前用户可用的优惠券
@voucher_bp.get('')
@api_login_required
def list_vouchers(current_user):
    vouchers = get_user_vouchers(current_user)
    return jsonify({'code': 200, 'data': [voucher.to_dict() for voucher in vouchers]})

# 对订单使用优惠码
@voucher_bp.post('/apply')
@api_login_required
def apply_voucher(current_user):
    data = request.get_json(silent=True) or {}
    order_id = data.get('order_id')
    voucher_code = data.get('voucher_code')

    if not isinstance(order_id, int) or isinstance(order_id, bool) or not voucher_code or not isinstance(voucher_code, str):
        return jsonify({'code': 422, 'msg': '缺少参数：order_id 或 voucher_code'}), 422

    order = Order.query.filter_by(id=order_id, user_id=current_user.id).first()
    if not order:
        return jsonify({'code': 404, 'msg': '订单不存在或不属于当前用户'}), 404

    result = apply_voucher_to_order(order, voucher_code.strip())
    if result['success']:
        return jsonify({
            'code': 200,
            'msg': result['msg'],
            'data': {
                'discount_amount': result['discount_amount'],
                'new_total': result['new_total']
            }
        })

    status = 500 if result['error'] == PersistenceFailure.code else 400
    return jsonify({'code': status, 'msg': result['msg'], 'error': result['error']}), status
