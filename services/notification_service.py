import requests
from flask import current_app

def _voucher_message(user, voucher):
    app_name = current_app.config.get('APP_NAME', 'Storefront')
    if voucher.type == 'percentage':
        discount_text = f'{voucher.value:g}% off'
    else:
        discount_text = f'{voucher.value:.2f} off'
    if voucher.min_spend:
        discount_text += f' on orders above {voucher.min_spend:.2f}'
    expiry = voucher.expires_at.strftime('%Y-%m-%d') if voucher.expires_at else 'no expiry'

    subject = f"You've received a voucher from {app_name} - {discount_text}"
    content = (
        f'Hello {user.name},\n\n'
        f'Use code {voucher.code} at checkout to get {discount_text}.\n'
        f'Valid until: {expiry}.\n'
    )
    return subject, content

def send_email(to: str, subject: str, content: str) -> bool:
    """通过邮件服务商 HTTP 接口发送邮件；未配置 MAIL_API_KEY 时只写日志"""
    config = current_app.config
    if not config.get('MAIL_API_KEY'):
        current_app.logger.info(f'[邮件] 未配置 MAIL_API_KEY，跳过发送：to={to} subject={subject}')
        return True

    payload = {
        'sender': {'email': config['MAIL_FROM'], 'name': config.get('APP_NAME')},
        'to': [{'email': to}],
        'subject': subject,
        'textContent': content
    }
    headers = {
        'accept': 'application/json',
        'content-type': 'application/json',
        'api-key': config['MAIL_API_KEY']
    }
    try:
        response = requests.post(config['MAIL_API_URL'], json=payload, headers=headers,
                                  timeout=config.get('MAIL_TIMEOUT', 10))
    except requests.RequestException as e:
        current_app.logger.error(f'邮件发送异常：to={to} error={e}')
        return False

    if response.ok:
        current_app.logger.info(f'邮件发送成功：to={to}')
        return True
    current_app.logger.error(f'邮件发送失败：to={to} status={response.status_code} body={response.text}')
    return False

def notify_voucher_granted(user, voucher) -> bool:
    """通知用户获得优惠券；失败只记录日志，不影响发放"""
    try:
        subject, content = _voucher_message(user, voucher)
        return send_email(user.email, subject, content)
    except Exception as e:
        current_app.logger.error(f'优惠券通知发送失败：user={user.id} voucher={voucher.code} error={e}')
        return False
