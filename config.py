import os
from dotenv import load_dotenv

basedir = os.path.abspath(os.path.dirname(__file__))
load_dotenv(os.path.join(basedir, '.env'))


def _flag(name, default):
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


class Config:
    SECRET_KEY = os.getenv('SECRET_KEY', 'parkwise-dev-key')
    SQLALCHEMY_DATABASE_URI = os.getenv(
        'DATABASE_URL',
        f'sqlite:///{os.path.join(basedir, "instance", "parkwise.db")}'
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')

    # 1 point = 1 currency unit; earned as a share of the base fee
    LOYALTY_EARN_RATE = float(os.getenv('LOYALTY_EARN_RATE', '0.10'))
    NO_SHOW_GRACE_MINUTES = int(os.getenv('NO_SHOW_GRACE_MINUTES', '15'))

    TOKEN_PREFIX = os.getenv('TOKEN_PREFIX', 'PKW')
    TOKEN_SIGNING = _flag('TOKEN_SIGNING', True)

    ADMIN_EMAIL = os.getenv('ADMIN_EMAIL', 'admin@parkwise.local')
    ADMIN_PASSWORD = os.getenv('ADMIN_PASSWORD', 'admin')


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    LOG_LEVEL = 'WARNING'
    TOKEN_SIGNING = True
