"""Navigator Secrets Meta information.
   Navigator Secrets is an ephemeral, zero-knowledge store for
   client-encrypted secrets that can be read exactly once.
"""
__title__ = 'navigator_secrets'
__description__ = (
   'Navigator Secrets stores client-encrypted secrets '
   'that are destroyed on first read or on expiration.'
)
__version__ = '0.2.0'
__copyright__ = 'Copyright (c) 2023 Jesus Lara'
__author__ = 'Jesus Lara'
__author_email__ = 'jesuslarag@gmail.com'
__license__ = 'Apache-2.0'
__url__ = 'https://github.com/phenobarbital/navigator-secrets'
