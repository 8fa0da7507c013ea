"""
docbook - backend foundation for a doctors booking system.

Database connection pool, query executor, transaction scope, schema
migrations, account storage and environment configuration.
"""

__version__ = '0.1.0'
