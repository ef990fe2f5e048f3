from flask import current_app
from sqlalchemy import func
from models.product import Product
from extensions import db

DEFAULT_CONFIDENCE_WEIGHT = 5
DEFAULT_MEAN = 3.5

def _confidence_weight() -> int:
    return current_app.config.get('RATING_CONFIDENCE_WEIGHT', DEFAULT_CONFIDENCE_WEIGHT)

def _default_mean() -> float:
    return current_app.config.get('RATING_DEFAULT_MEAN', DEFAULT_MEAN)

def global_average_rating() -> float:
    """所有已有评分商品的加权平均分（按评分人数加权），没有任何评分时返回默认均值"""
    with db.session.no_autoflush:
        total_sum, total_count = db.session.query(
            func.sum(Product.average_rating * Product.rating_count),
            func.sum(Product.rating_count)
        ).filter(Product.rating_count > 0).one()

    if total_count:
        return float(total_sum) / float(total_count)
    return _default_mean()

def _bayesian(average: float, count: int, global_average: float) -> float:
    weight = _confidence_weight()
    return round((weight * global_average + average * count) / (weight + count), 2)

def bayesian_rating(product: Product, global_average: float = None) -> float:
    """贝叶斯平均：评分人数越少越靠近全站均值"""
    if not product.rating_count:
        return 0
    if global_average is None:
        global_average = global_average_rating()
    return _bayesian(product.average_rating, product.rating_count, global_average)

def _clamp(value: float) -> float:
    return min(max(value, 0.0), 5.0)

def lock_product(product_id: int) -> Product:
    """读取并锁定商品行（SELECT ... FOR UPDATE），读旧评分之前调用"""
    return Product.query.filter_by(id=product_id).with_for_update().populate_existing().one()

def apply_rating_change(product: Product, old_rating: int, new_rating: int, is_new: bool) -> Product:
    """新增/修改/删除一条评分后更新商品的评分字段。

    - is_new=True：新增评分，old_rating 忽略
    - is_new=False 且 new_rating > 0：修改评分，人数不变
    - is_new=False 且 new_rating == 0：删除评分

    调用方负责校验评分范围（1-5）并提交事务。商品行在读改写期间加锁，
    全站均值取本次变更之前已持久化的状态。
    """
    product = lock_product(product.id)
    global_average = global_average_rating()

    count = product.rating_count or 0
    average = product.average_rating or 0

    if is_new:
        new_count = count + 1
        product.rating_count = new_count
        product.average_rating = _clamp((average * count + new_rating) / new_count)
    elif new_rating > 0:
        if count > 0:
            product.average_rating = _clamp((average * count - old_rating + new_rating) / count)
    else:
        new_count = max(count - 1, 0)
        if new_count > 0:
            product.average_rating = _clamp((average * count - old_rating) / new_count)
        else:
            product.average_rating = 0
            product.bayesian_rating = 0
        product.rating_count = new_count

    product.bayesian_rating = bayesian_rating(product, global_average)
    db.session.add(product)
    db.session.flush()
    return product

def recalculate_all() -> int:
    """重算所有已评分商品的贝叶斯评分，全站均值在本轮开始时计算一次，返回处理的商品数"""
    global_average = global_average_rating()
    products = Product.query.filter(Product.rating_count > 0).all()

    for product in products:
        product.bayesian_rating = _bayesian(product.average_rating, product.rating_count, global_average)

    db.session.commit()
    current_app.logger.info(f'商品评分重算完成：{len(products)} 个商品，全站均值 {global_average:.4f}')
    return len(products)

def adjust_rating(product: Product, average_rating: float, bayesian_rating: float, rating_count: int) -> Product:
    """管理员直接覆盖商品评分字段（数据修正用），调用方负责提交"""
    product = lock_product(product.id)
    product.rating_count = rating_count
    product.average_rating = average_rating if rating_count else 0
    product.bayesian_rating = bayesian_rating if rating_count else 0
    db.session.flush()
    return product
