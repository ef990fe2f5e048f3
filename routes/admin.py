from flask import Blueprint, request, jsonify, current_app
from sqlalchemy.exc import SQLAlchemyError
from models.product import Product
from services.voucher_service import (create_voucher, generate_bulk_vouchers,
                                      schedule_voucher_distribution, get_voucher_usage_stats)
from services.qualification_service import process_voucher_assignments
from services.rating_service import recalculate_all, adjust_rating
from services.errors import PersistenceFailure
from utils.jwt_utils import admin_required
from utils.validator import (validate_voucher_create, validate_voucher_bulk,
                             validate_voucher_targeted, validate_rating_adjustment)
from extensions import db

admin_bp = Blueprint('admin', __name__)

# 创建优惠券
@admin_bp.post('/vouchers')
@admin_required
def admin_create_voucher(current_user):
    check = validate_voucher_create(request.get_json(silent=True))
    if not check['valid']:
        return jsonify({'code': 422, 'msg': check['msg']}), 422

    result = create_voucher(check['data'])
    if not result['success']:
        return jsonify({'code': 400, 'msg': result['msg']}), 400
    return jsonify({'code': 201, 'msg': result['msg'], 'data': result['data'].to_dict()}), 201

# 批量生成优惠券
@admin_bp.post('/vouchers/bulk')
@admin_required
def admin_generate_bulk(current_user):
    check = validate_voucher_bulk(request.get_json(silent=True))
    if not check['valid']:
        return jsonify({'code': 422, 'msg': check['msg']}), 422

    data = check['data']
    result = generate_bulk_vouchers(data, data['quantity'])
    if not result['success']:
        status = 500 if result['error'] == PersistenceFailure.code else 400
        return jsonify({'code': status, 'msg': result['msg'], 'error': result['error']}), status
    return jsonify({'code': 201, 'msg': result['msg'], 'data': {'voucher_codes': result['voucher_codes']}}), 201

# 创建定向优惠券（可立即发放）
@admin_bp.post('/vouchers/targeted')
@admin_required
def admin_schedule_distribution(current_user):
    check = validate_voucher_targeted(request.get_json(silent=True))
    if not check['valid']:
        return jsonify({'code': 422, 'msg': check['msg']}), 422

    result = schedule_voucher_distribution(check['data'])
    if not result['success']:
        return jsonify({'code': 400, 'msg': result['msg']}), 400
    return jsonify({
        'code': 201,
        'msg': result['msg'],
        'data': {'voucher_id': result['voucher_id'], 'assigned': result['assigned']}
    }), 201

# 优惠券使用统计
@admin_bp.get('/vouchers/<int:voucher_id>/stats')
@admin_required
def admin_voucher_stats(voucher_id, current_user):
    stats = get_voucher_usage_stats(voucher_id)
    if stats is None:
        return jsonify({'code': 404, 'msg': '优惠券不存在'}), 404
    return jsonify({'code': 200, 'data': stats})

# 手动触发定向优惠券发放
@admin_bp.post('/vouchers/process-assignments')
@admin_required
def admin_process_assignments(current_user):
    total = process_voucher_assignments()
    return jsonify({'code': 200, 'msg': f'共发放 {total} 人', 'data': {'assigned': total}})

# 直接修改商品评分
@admin_bp.put('/products/<int:product_id>/ratings')
@admin_required
def admin_adjust_rating(product_id, current_user):
    check = validate_rating_adjustment(request.get_json(silent=True))
    if not check['valid']:
        return jsonify({'code': 422, 'msg': check['msg']}), 422

    product = Product.query.get(product_id)
    if not product:
        return jsonify({'code': 404, 'msg': '商品不存在'}), 404

    try:
        product = adjust_rating(product, **check['data'])
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error(f'修改商品评分失败：product={product_id} error={e}')
        return jsonify({'code': 500, 'msg': '修改评分失败，请稍后重试'}), 500

    return jsonify({'code': 200, 'msg': '商品评分已更新', 'data': product.rating_summary()})

# 重算所有商品的贝叶斯评分
@admin_bp.post('/products/recalculate-ratings')
@admin_required
def admin_recalculate_ratings(current_user):
    count = recalculate_all()
    return jsonify({'code': 200, 'msg': f'已重算 {count} 个商品的评分', 'data': {'products': count}})
