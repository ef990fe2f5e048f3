from flask_sqlalchemy import SQLAlchemy
from flask_bcrypt import Bcrypt
from flask_apscheduler import APScheduler

# 统一的 SQLAlchemy 实例，模型与 app 都从这里 import db
db = SQLAlchemy()

# 用户密码哈希
bcrypt = Bcrypt()

# 定时任务：定向优惠券发放、评分重算
scheduler = APScheduler()
