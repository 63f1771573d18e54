import tempfile

from .base import *

DEBUG = False

SECRET_KEY = 'test-secret-key'

DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': ':memory:',
    }
}

CACHES = {
    'default': {
        'BACKEND': 'django.core.cache.backends.locmem.LocMemCache',
        'LOCATION': 'storefront-test',
    }
}

ALLOWED_HOSTS = ['testserver']

QNBPAY = {
    'MERCHANT_KEY': '$2y$10$merchantkey',
    'MERCHANT_ID': '12345',
    'APP_KEY': 'app-key',
    'APP_SECRET': 'app-secret',
    'TEST_MODE': True,
    'ENABLE_3D': True,
    'INSTALLMENT': True,
    'INSTALLMENT_LIMIT': 12,
    'LIMIT_BY_PRODUCT': False,
    'LIMIT_BY_CART': False,
    'CART_THRESHOLD': '0',
    'ORDER_PREFIX': 'PFX',
    'SUCCESS_STATUS': 'paid',
    'SALE_WEB_HOOK_KEY': '',
    'DEBUG': False,
}
QNBPAY_DEBUG_DIR = tempfile.mkdtemp(prefix='qnbpay-test-')

PASSWORD_HASHERS = ['django.contrib.auth.hashers.MD5PasswordHasher']
