import re
from datetime import datetime
from config import Config

CODE_PATTERN = re.compile(r'^[A-Za-z0-9_-]{3,64}$')
PREFIX_PATTERN = re.compile(r'^[A-Za-z0-9_-]{0,10}$')

def parse_datetime(value):
    """支持 '%Y-%m-%d %H:%M:%S' 与 ISO 8601 两种格式"""
    if isinstance(value, datetime):
        return value
    try:
        return datetime.strptime(value, '%Y-%m-%d %H:%M:%S')
    except (TypeError, ValueError):
        pass
    parsed = datetime.fromisoformat(value)
    # 数据库中统一存本地无时区时间
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone().replace(tzinfo=None)
    return parsed

def _number(data, key, minimum=0, required=False, integer=False):
    value = data.get(key)
    if value is None:
        if required:
            raise ValueError(f'缺少参数：{key}')
        return None
    if isinstance(value, bool):
        raise ValueError(f'{key} 必须是数字')
    try:
        value = int(value) if integer else float(value)
    except (TypeError, ValueError):
        raise ValueError(f'{key} 必须是{"整数" if integer else "数字"}')
    if value < minimum:
        raise ValueError(f'{key} 不能小于 {minimum}')
    return value

def _id_list(data, key):
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, list) or not all(isinstance(v, int) and not isinstance(v, bool) for v in value):
        raise ValueError(f'{key} 必须是整数ID数组')
    return value

def _common_voucher_fields(data: dict) -> dict:
    cleaned = {}

    voucher_type = data.get('type')
    if voucher_type not in ('percentage', 'fixed'):
        raise ValueError('type 必须是 percentage 或 fixed')
    cleaned['type'] = voucher_type

    cleaned['value'] = _number(data, 'value', required=True)
    if voucher_type == 'percentage' and cleaned['value'] > 100:
        raise ValueError('百分比折扣不能超过100')

    cleaned['min_spend'] = _number(data, 'min_spend') or 0

    if data.get('expires_at'):
        try:
            expires_at = parse_datetime(data['expires_at'])
        except (TypeError, ValueError):
            raise ValueError('expires_at 时间格式错误')
        if expires_at <= datetime.now():
            raise ValueError('expires_at 必须晚于当前时间')
        cleaned['expires_at'] = expires_at

    if 'is_active' in data:
        if not isinstance(data['is_active'], bool):
            raise ValueError('is_active 必须是布尔值')
        cleaned['is_active'] = data['is_active']

    # 不传默认每人1次，显式传 null 表示不限
    if 'max_usage_per_user' in data and data['max_usage_per_user'] is None:
        cleaned['max_usage_per_user'] = None
    else:
        max_per_user = _number(data, 'max_usage_per_user', minimum=1, integer=True)
        cleaned['max_usage_per_user'] = max_per_user if max_per_user is not None else 1
    cleaned['max_total_usage'] = _number(data, 'max_total_usage', minimum=1, integer=True)

    description = data.get('description')
    if description is not None and not isinstance(description, str):
        raise ValueError('description 必须是字符串')
    cleaned['description'] = description

    cleaned['category_ids'] = _id_list(data, 'category_ids')
    cleaned['product_ids'] = _id_list(data, 'product_ids')
    return cleaned

def _validate_code(data: dict) -> str:
    code = data.get('code')
    if not code or not isinstance(code, str):
        raise ValueError('缺少参数：code')
    if not CODE_PATTERN.match(code):
        raise ValueError('优惠码只能包含字母、数字、下划线和短横线，长度3-64')
    return code

def validate_voucher_create(data: dict) -> dict:
    """验证创建优惠券参数"""
    if not isinstance(data, dict):
        return {'valid': False, 'msg': '请求数据不能为空'}
    try:
        cleaned = _common_voucher_fields(data)
        cleaned['code'] = _validate_code(data)

        qualification_type = data.get('qualification_type') or 'manual'
        if qualification_type not in ('manual', 'automatic', 'targeted'):
            raise ValueError('qualification_type 必须是 manual/automatic/targeted')
        cleaned['qualification_type'] = qualification_type

        criteria = data.get('criteria')
        if criteria is not None and not isinstance(criteria, dict):
            raise ValueError('criteria 必须是对象')
        cleaned['criteria'] = criteria
    except ValueError as e:
        return {'valid': False, 'msg': str(e)}
    return {'valid': True, 'data': cleaned}

def validate_voucher_bulk(data: dict) -> dict:
    """验证批量生成优惠券参数"""
    if not isinstance(data, dict):
        return {'valid': False, 'msg': '请求数据不能为空'}
    try:
        cleaned = _common_voucher_fields(data)

        prefix = data.get('prefix')
        if prefix is None or not isinstance(prefix, str) or not PREFIX_PATTERN.match(prefix):
            raise ValueError('prefix 必须是不超过10位的字母数字')
        cleaned['prefix'] = prefix

        quantity = _number(data, 'quantity', minimum=1, required=True, integer=True)
        if quantity > Config.VOUCHER_BULK_MAX_QUANTITY:
            raise ValueError(f'quantity 不能超过 {Config.VOUCHER_BULK_MAX_QUANTITY}')
        cleaned['quantity'] = quantity

        code_length = _number(data, 'code_length', integer=True)
        if code_length is not None and not (Config.VOUCHER_CODE_MIN_LENGTH <= code_length <= Config.VOUCHER_CODE_MAX_LENGTH):
            raise ValueError(f'code_length 必须在 {Config.VOUCHER_CODE_MIN_LENGTH}-{Config.VOUCHER_CODE_MAX_LENGTH} 之间')
        cleaned['code_length'] = code_length
    except ValueError as e:
        return {'valid': False, 'msg': str(e)}
    return {'valid': True, 'data': cleaned}

def validate_voucher_targeted(data: dict) -> dict:
    """验证定向优惠券参数"""
    if not isinstance(data, dict):
        return {'valid': False, 'msg': '请求数据不能为空'}
    try:
        cleaned = _common_voucher_fields(data)
        cleaned['code'] = _validate_code(data)

        criteria = data.get('criteria')
        if not isinstance(criteria, dict):
            raise ValueError('缺少参数：criteria')
        cleaned['criteria'] = criteria

        assign_immediately = data.get('assign_immediately', False)
        if not isinstance(assign_immediately, bool):
            raise ValueError('assign_immediately 必须是布尔值')
        cleaned['assign_immediately'] = assign_immediately
    except ValueError as e:
        return {'valid': False, 'msg': str(e)}
    return {'valid': True, 'data': cleaned}

def validate_rating(data: dict) -> dict:
    """验证评分参数：rating 为1-5的整数，review 最多1000字"""
    if not isinstance(data, dict):
        return {'valid': False, 'msg': '请求数据不能为空'}
    rating = data.get('rating')
    if isinstance(rating, bool) or not isinstance(rating, int) or not 1 <= rating <= 5:
        return {'valid': False, 'msg': '评分必须是1-5的整数'}
    review = data.get('review')
    if review is not None and (not isinstance(review, str) or len(review) > 1000):
        return {'valid': False, 'msg': '评价内容不能超过1000字'}
    return {'valid': True}

def validate_rating_adjustment(data: dict) -> dict:
    """验证管理员直接修改评分参数"""
    if not isinstance(data, dict):
        return {'valid': False, 'msg': '请求数据不能为空'}
    try:
        average = _number(data, 'average_rating', required=True)
        bayesian = _number(data, 'bayesian_rating', required=True)
        count = _number(data, 'rating_count', required=True, integer=True)
    except ValueError as e:
        return {'valid': False, 'msg': str(e)}
    if average > 5 or bayesian > 5:
        return {'valid': False, 'msg': '评分不能超过5'}
    if count == 0 and average != 0:
        return {'valid': False, 'msg': '评分人数为0时平均分必须为0'}
    if count > 0 and average < 1:
        return {'valid': False, 'msg': '有评分时平均分不能低于1'}
    return {'valid': True, 'data': {'average_rating': average, 'bayesian_rating': bayesian, 'rating_count': count}}
