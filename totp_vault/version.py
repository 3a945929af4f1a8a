"""TOTP Vault Meta information.
   TOTP Vault stores per-user authenticator secrets, encrypted at rest,
   in a local JSON file or a MongoDB collection.
"""
__title__ = 'totp_vault'
__description__ = (
   'TOTP Vault stores labeled authenticator secrets per user, '
   'encrypted at rest, with local-file or MongoDB persistence.'
)
__version__ = '0.3.0'
__license__ = 'Apache-2.0'
