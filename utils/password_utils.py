from extensions import bcrypt

def encrypt_password(password: str) -> str:
    """加密密码"""
    return bcrypt.generate_password_hash(password).decode('utf-8')

def verify_password(password: str, encrypted_password: str) -> bool:
    """验证密码"""
    return bcrypt.check_password_hash(encrypted_password, password)
