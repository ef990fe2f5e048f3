import click
from flask import current_app
from flask.cli import AppGroup
from models.user import User, Role
from services.auth_service import user_register
from services.qualification_service import process_voucher_assignments
from services.rating_service import recalculate_all
from extensions import db

vouchers_cli = AppGroup('vouchers', help='优惠券相关命令')
products_cli = AppGroup('products', help='商品相关命令')
users_cli = AppGroup('users', help='用户相关命令')

@vouchers_cli.command('process-assignments')
def process_assignments_command():
    """按条件为用户发放所有激活的定向优惠券"""
    click.echo('开始处理定向优惠券发放...')
    try:
        total = process_voucher_assignments()
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f'处理定向优惠券发放失败：{e}')
        raise click.ClickException(f'处理定向优惠券发放失败：{e}')
    click.echo(f'发放完成，共发放 {total} 人')

@products_cli.command('recalculate-ratings')
def recalculate_ratings_command():
    """重算所有商品的贝叶斯评分"""
    click.echo('开始重算商品评分...')
    count = recalculate_all()
    click.echo(f'已重算 {count} 个商品的评分')

@users_cli.command('create')
@click.option('--name', required=True)
@click.option('--email', required=True)
@click.option('--password', required=True, prompt=True, hide_input=True)
@click.option('--admin', is_flag=True, help='同时授予 admin 角色')
def create_user_command(name, email, password, admin):
    """创建用户"""
    roles = ('customer', 'admin') if admin else ('customer',)
    result = user_register({'name': name, 'email': email, 'password': password}, roles=roles)
    if isinstance(result, dict):
        raise click.ClickException(result['error'])
    click.echo(f'用户已创建：id={result.id} email={result.email}')

@users_cli.command('make-admin')
@click.argument('email')
def make_admin_command(email):
    """授予已有用户 admin 角色"""
    user = User.query.filter_by(email=email).first()
    if not user:
        raise click.ClickException('用户不存在')
    if user.has_role('admin'):
        click.echo('该用户已经是管理员')
        return
    role = Role.query.filter_by(name='admin').first() or Role(name='admin')
    user.roles.append(role)
    db.session.commit()
    click.echo(f'{email} 已设置为管理员')

def register_commands(app):
    app.cli.add_command(vouchers_cli)
    app.cli.add_command(products_cli)
    app.cli.add_command(users_cli)
