import os
from dotenv import load_dotenv

load_dotenv()

class Config:
    # 数据库配置
    basedir = os.path.abspath(os.path.dirname(__file__))
    SQLALCHEMY_DATABASE_URI = os.getenv('DATABASE_URL', f"sqlite:///{os.path.join(basedir, 'storefront.db')}")
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Flask配置
    SECRET_KEY = os.getenv('SECRET_KEY', 'dev-secret-key-please-change-in-production')
    APP_NAME = os.getenv('APP_NAME', 'Storefront')
    LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')

    # JWT配置
    JWT_SECRET_KEY = os.getenv('JWT_SECRET_KEY', 'dev-secret-key-change-in-production')
    JWT_ACCESS_TOKEN_EXPIRES = 3600 * 2  # 2小时

    # 评分（贝叶斯平均）
    RATING_CONFIDENCE_WEIGHT = int(os.getenv('RATING_CONFIDENCE_WEIGHT', 5))
    RATING_DEFAULT_MEAN = float(os.getenv('RATING_DEFAULT_MEAN', 3.5))

    # 优惠券
    VOUCHER_CODE_LENGTH = 8
    VOUCHER_CODE_MIN_LENGTH = 4
    VOUCHER_CODE_MAX_LENGTH = 12
    VOUCHER_BULK_MAX_QUANTITY = 1000
    VOUCHER_CODE_MAX_ATTEMPTS = 10

    # 定时任务
    SCHEDULER_ENABLED = os.getenv('SCHEDULER_ENABLED', 'true').lower() == 'true'
    SCHEDULER_API_ENABLED = False
    VOUCHER_ASSIGNMENT_INTERVAL = int(os.getenv('VOUCHER_ASSIGNMENT_INTERVAL', 3600))
    RATING_RECALC_INTERVAL = int(os.getenv('RATING_RECALC_INTERVAL', 86400))

    # 邮件通知（未配置 MAIL_API_KEY 时只写日志）
    MAIL_API_URL = os.getenv('MAIL_API_URL', 'https://api.brevo.com/v3/smtp/email')
    MAIL_API_KEY = os.getenv('MAIL_API_KEY', '')
    MAIL_FROM = os.getenv('MAIL_FROM', 'no-reply@storefront.local')
    MAIL_TIMEOUT = 10


class TestingConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    SCHEDULER_ENABLED = False
    JWT_SECRET_KEY = 'test-jwt-secret-key-with-enough-length'
    BCRYPT_LOG_ROUNDS = 4
