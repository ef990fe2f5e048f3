class VoucherError(ValueError):
    """优惠券业务异常基类，code 为返回给前端的稳定错误码"""
    code = 'voucher_error'
    default_msg = '优惠券不可用'

    def __init__(self, msg: str = None):
        self.msg = msg or self.default_msg
        super().__init__(self.msg)

class InvalidVoucher(VoucherError):
    code = 'invalid_voucher'
    default_msg = '优惠码无效或已过期'

class VoucherExhausted(VoucherError):
    code = 'voucher_exhausted'
    default_msg = '该优惠券已达到使用次数上限'

class UserLimitReached(VoucherError):
    code = 'user_limit_reached'
    default_msg = '您使用该优惠券的次数已达上限'

class BelowMinimumSpend(VoucherError):
    code = 'below_minimum_spend'
    default_msg = '订单金额未达到最低消费'

class PersistenceFailure(VoucherError):
    # 基础设施错误，不向前端透露细节
    code = 'persistence_failure'
    default_msg = '操作失败，请稍后重试'
