from flask import Blueprint, request, jsonify, current_app
from sqlalchemy.exc import SQLAlchemyError
from models.product import Product
from models.rating import ProductRating
from models.order import Order, OrderItem, OrderStatus
from services.rating_service import apply_rating_change, lock_product
from utils.jwt_utils import api_login_required
from utils.validator import validate_rating
from extensions import db

rating_bp = Blueprint('rating', __name__)

def has_purchased(user_id: int, product_id: int) -> bool:
    """用户是否有包含该商品的已完成订单"""
    return db.session.query(
        Order.query.join(OrderItem, OrderItem.order_id == Order.id).filter(
            Order.user_id == user_id,
            Order.status == OrderStatus.COMPLETED,
            OrderItem.product_id == product_id
        ).exists()
    ).scalar()

# 商品评分列表（分页）
@rating_bp.get('/products/<int:product_id>/ratings')
def get_product_ratings(product_id):
    product = Product.query.get(product_id)
    if not product:
        return jsonify({'code': 404, 'msg': '商品不存在'}), 404

    page = request.args.get('page', 1, type=int)
    per_page = min(request.args.get('per_page', 10, type=int), 50)
    pagination = product.ratings.order_by(ProductRating.create_time.desc(), ProductRating.id.desc()) \
        .paginate(page=page, per_page=per_page, error_out=False)

    data = product.rating_summary()
    data['ratings'] = [rating.to_dict() for rating in pagination.items]
    data['page'] = pagination.page
    data['total'] = pagination.total
    return jsonify({'code': 200, 'data': data})

# 评分（已评过则更新）
@rating_bp.post('/products/<int:product_id>/ratings')
@api_login_required
def rate_product(product_id, current_user):
    data = request.get_json(silent=True)
    check = validate_rating(data)
    if not check['valid']:
        return jsonify({'code': 422, 'msg': check['msg']}), 422

    product = Product.query.get(product_id)
    if not product:
        return jsonify({'code': 404, 'msg': '商品不存在'}), 404

    purchased = has_purchased(current_user.id, product_id)
    if not current_user.is_admin() and not purchased:
        return jsonify({'code': 403, 'msg': '购买该商品后才能评分'}), 403

    try:
        # 先锁商品行再读旧评分，同一商品的评分变更串行执行
        product = lock_product(product_id)
        existing = ProductRating.query.filter_by(product_id=product_id, user_id=current_user.id) \
            .populate_existing().first()
        if existing:
            old_rating = existing.rating
            existing.rating = data['rating']
            existing.review = data.get('review')
            product = apply_rating_change(product, old_rating, data['rating'], False)
            msg = '评分已更新'
        else:
            db.session.add(ProductRating(
                product_id=product_id,
                user_id=current_user.id,
                rating=data['rating'],
                review=data.get('review'),
                verified_purchase=purchased
            ))
            product = apply_rating_change(product, 0, data['rating'], True)
            msg = '评分成功'
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error(f'评分失败：product={product_id} user={current_user.id} error={e}')
        return jsonify({'code': 500, 'msg': '评分失败，请稍后重试'}), 500

    return jsonify({'code': 200, 'msg': msg, 'data': product.rating_summary()})

# 删除评分（本人或管理员）
@rating_bp.delete('/ratings/<int:rating_id>')
@api_login_required
def delete_rating(rating_id, current_user):
    rating = ProductRating.query.get(rating_id)
    if not rating:
        return jsonify({'code': 404, 'msg': '评分不存在'}), 404
    if rating.user_id != current_user.id and not current_user.is_admin():
        return jsonify({'code': 403, 'msg': '无权删除该评分'}), 403

    product_id = rating.product_id
    try:
        product = lock_product(product_id)
        rating = ProductRating.query.filter_by(id=rating_id).populate_existing().first()
        if not rating:
            db.session.rollback()
            return jsonify({'code': 404, 'msg': '评分不存在'}), 404
        rating_value = rating.rating
        db.session.delete(rating)
        product = apply_rating_change(product, rating_value, 0, False)
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error(f'删除评分失败：rating={rating_id} error={e}')
        return jsonify({'code': 500, 'msg': '删除评分失败，请稍后重试'}), 500

    return jsonify({'code': 200, 'msg': '评分已删除', 'data': product.rating_summary()})
