"""
Database URL resolution: local URL as configured, RDS credentials in Lambda
"""
import os
import json
import logging
import ssl
from typing import Optional, Dict, Any

import boto3
from sqlalchemy.engine import make_url
from sqlalchemy.exc import ArgumentError

from kpta.core.config import settings

logger = logging.getLogger(__name__)


def get_rds_credentials() -> Optional[Dict[str, Any]]:
    """Read the username/password secret named by DB_SECRET_ARN"""
    secret_arn = os.environ.get("DB_SECRET_ARN")
    if not secret_arn:
        return None

    try:
        response = boto3.client('secretsmanager').get_secret_value(SecretId=secret_arn)
        return json.loads(response['SecretString'])
    except Exception as e:
        logger.warning(f"Could not load RDS credentials from {secret_arn}: {e}")
        return None


def create_ssl_context() -> ssl.SSLContext:
    """SSL context for RDS connections (encrypted, certificate not verified)"""
    context = ssl.create_default_context()
    context.check_hostname = False
    context.verify_mode = ssl.CERT_NONE
    return context


def get_database_url() -> str:
    database_url = os.environ.get("DATABASE_URL", settings.DATABASE_URL)

    if not os.environ.get("AWS_LAMBDA_FUNCTION_NAME") or database_url.startswith("sqlite"):
        return database_url

    credentials = get_rds_credentials()
    if not credentials:
        logger.warning("No RDS credentials found, using DATABASE_URL as-is")
        return database_url

    try:
        url = make_url(database_url)
    except ArgumentError:
        logger.error("DATABASE_URL is not a valid SQLAlchemy URL, using it as-is")
        return database_url

    url = url.set(
        drivername="postgresql+asyncpg",
        username=credentials.get('username', 'kpta'),
        password=credentials.get('password', ''),
        port=url.port or 5432,
        database=url.database or "kpta",
    )
    logger.info(f"Database config: host={url.host}, port={url.port}, db={url.database}")
    return url.render_as_string(hide_password=False)
