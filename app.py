import logging
import os
from flask import Flask, jsonify
from flask_jwt_extended import JWTManager
from flask_cors import CORS
from config import Config
from extensions import db, bcrypt, scheduler

# 初始化JWT
jwt = JWTManager()

def setup_logging(app):
    """按 LOG_LEVEL 配置日志格式"""
    level = getattr(logging, str(app.config.get('LOG_LEVEL', 'INFO')).upper(), logging.INFO)
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s'))
    app.logger.handlers = [handler]
    app.logger.setLevel(level)

def setup_scheduler_tasks(app):
    """设置定时任务"""
    from services.qualification_service import process_voucher_assignments
    from services.rating_service import recalculate_all

    def run_voucher_assignments():
        """按条件发放定向优惠券"""
        with app.app_context():
            try:
                process_voucher_assignments()
            except Exception:
                app.logger.exception('定时任务 process_voucher_assignments 执行失败')
                db.session.rollback()

    def run_rating_recalculation():
        """重算所有商品贝叶斯评分"""
        with app.app_context():
            try:
                recalculate_all()
            except Exception:
                app.logger.exception('定时任务 recalculate_ratings 执行失败')
                db.session.rollback()

    scheduler.add_job(
        func=run_voucher_assignments,
        trigger='interval',
        seconds=app.config['VOUCHER_ASSIGNMENT_INTERVAL'],
        id='process_voucher_assignments',
        misfire_grace_time=900,
        replace_existing=True
    )
    scheduler.add_job(
        func=run_rating_recalculation,
        trigger='interval',
        seconds=app.config['RATING_RECALC_INTERVAL'],
        id='recalculate_ratings',
        misfire_grace_time=900,
        replace_existing=True
    )
    app.logger.info('定时任务已添加：process_voucher_assignments, recalculate_ratings')

def create_app(config_class=Config):
    app = Flask(__name__)
    app.config.from_object(config_class)
    setup_logging(app)

    # 初始化插件
    db.init_app(app)
    bcrypt.init_app(app)
    jwt.init_app(app)
    CORS(app, supports_credentials=True)

    # Flask调试模式下会启动重载进程，只在主进程中启动调度器
    is_main_process = os.environ.get('WERKZEUG_RUN_MAIN') != 'true'
    if app.config.get('SCHEDULER_ENABLED') and not scheduler.running and is_main_process:
        scheduler.init_app(app)
        scheduler.start()
        setup_scheduler_tasks(app)
        app.logger.info('APScheduler 初始化成功')

    # 注册蓝图
    from routes.auth import auth_bp
    from routes.voucher import voucher_bp
    from routes.rating import rating_bp
    from routes.admin import admin_bp

    app.register_blueprint(auth_bp, url_prefix='/api/auth')
    app.register_blueprint(voucher_bp, url_prefix='/api/vouchers')
    app.register_blueprint(rating_bp, url_prefix='/api')
    app.register_blueprint(admin_bp, url_prefix='/api/admin')

    from commands import register_commands
    register_commands(app)

    @app.errorhandler(404)
    def not_found(e):
        return jsonify({'code': 404, 'msg': '接口不存在'}), 404

    @app.errorhandler(500)
    def internal_error(e):
        db.session.rollback()
        return jsonify({'code': 500, 'msg': '服务器内部错误'}), 500

    # 导入所有模型后创建数据库表
    with app.app_context():
        import models.user, models.product, models.rating, models.order, models.voucher  # noqa: F401
        db.create_all()

    return app

if __name__ == '__main__':
    app = create_app()
    app.run(host='0.0.0.0', port=5000, debug=True)
