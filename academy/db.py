# -*- coding: utf-8 -*-
import logging
import threading
import time
from contextlib import contextmanager

import mysql.connector
from fastapi import APIRouter
from mysql.connector import pooling

from .config import settings

logger = logging.getLogger(__name__)

DB_UNAVAILABLE_DETAIL = "Error de conexion con la base de datos. Intenta de nuevo."

# Global connection pool
_connection_pool = None
_pool_lock = threading.Lock()
_pool_initialized = False


def _build_mysql_config():
    """Build MySQL configuration from application settings."""
    config = {
        "host": settings.DB_HOST,
        "port": settings.DB_PORT,
        "user": settings.DB_USER,
        "password": settings.DB_PASSWORD,
        "database": settings.DB_NAME,
        "charset": "utf8mb4",
        "collation": "utf8mb4_unicode_ci",
        "autocommit": False,
        "pool_name": "academy_pool",
        "pool_size": settings.DB_POOL_SIZE,
        "pool_reset_session": True,
        "connection_timeout": 10,
        "use_pure": True,
        "time_zone": "+00:00",
    }
    return config


def _initialize_connection_pool():
    """Initialize the connection pool with retry logic.
    Never raises. On failure, marks pool as initialized-disabled so callers fall back to direct connections.
    """
    global _connection_pool, _pool_initialized

    if _pool_initialized:
        return _connection_pool

    if settings.DB_DISABLE_POOL:
        logger.warning("Database connection pooling is disabled via DB_DISABLE_POOL")
        with _pool_lock:
            _connection_pool = None
            _pool_initialized = True
        return None

    with _pool_lock:
        if _pool_initialized:
            return _connection_pool

        max_retries = 3
        retry_delay = 2

        for attempt in range(max_retries):
            try:
                config = _build_mysql_config()
                logger.info(f"Initializing connection pool (attempt {attempt + 1})")

                _connection_pool = pooling.MySQLConnectionPool(**config)

                test_conn = _connection_pool.get_connection()
                test_conn.ping(reconnect=True)
                test_conn.close()

                _pool_initialized = True
                logger.info("Connection pool initialized successfully")
                return _connection_pool

            except Exception as e:
                logger.error(f"Connection pool initialization failed (attempt {attempt + 1}): {e}")
                if attempt < max_retries - 1:
                    time.sleep(retry_delay)
                    retry_delay *= 2
                else:
                    logger.error("Failed to initialize connection pool; falling back to direct connections")
                    _connection_pool = None
                    _pool_initialized = True
                    return None


def get_mysql_connection():
    """Get a database connection, preferring the pool. Returns None when the database is unreachable."""
    try:
        if not _pool_initialized:
            _initialize_connection_pool()

        if _connection_pool is not None:
            try:
                conn = _connection_pool.get_connection()
                if conn and conn.is_connected():
                    return conn
                logger.warning("Pool returned invalid connection, will try direct connection")
            except Exception as pool_error:
                logger.warning(f"Pool connection failed: {pool_error}")

        config = _build_mysql_config()
        config.pop("pool_name", None)
        config.pop("pool_size", None)
        config.pop("pool_reset_session", None)

        conn = mysql.connector.connect(**config)
        if conn and conn.is_connected():
            return conn

        logger.error("Direct connection failed")
        return None

    except Exception as e:
        logger.error(f"Database connection error: {e}")
        return None


@contextmanager
def get_db_connection_with_retry(max_retries=3, delay=1):
    """Context manager for database connections with retry logic.
    Usage:
        with get_db_connection_with_retry() as conn:
            if not conn:
                raise HTTPException(status_code=500, ...)
            cursor = conn.cursor(dictionary=True)
    Yields None when every attempt failed.
    """
    for attempt in range(max_retries):
        conn = get_mysql_connection()
        if conn and conn.is_connected():
            try:
                yield conn
            finally:
                if conn.is_connected():
                    conn.close()
            return

        logger.warning(f"Database connection attempt {attempt + 1} failed")
        if attempt < max_retries - 1:
            time.sleep(delay)
            delay *= 1.5

    logger.error("All database connection attempts failed")
    yield None


SCHEMA_STATEMENTS = [
    """
    CREATE TABLE IF NOT EXISTS users (
        id CHAR(36) PRIMARY KEY,
        email VARCHAR(255) UNIQUE NOT NULL,
        password_hash VARCHAR(255) NULL,
        email_confirmed_at TIMESTAMP NULL,
        last_login TIMESTAMP NULL,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS profiles (
        id CHAR(36) PRIMARY KEY,
        email VARCHAR(255) UNIQUE NOT NULL,
        full_name VARCHAR(255),
        country VARCHAR(100),
        phone VARCHAR(50),
        avatar_url VARCHAR(500),
        role ENUM('student', 'admin') DEFAULT 'student',
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP ON UPDATE CURRENT_TIMESTAMP,
        FOREIGN KEY (id) REFERENCES users(id) ON DELETE CASCADE
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS auth_tokens (
        id CHAR(36) PRIMARY KEY,
        user_id CHAR(36) NOT NULL,
        token_hash CHAR(64) UNIQUE NOT NULL,
        token_type ENUM('signup', 'recovery') NOT NULL,
        expires_at TIMESTAMP NOT NULL,
        consumed_at TIMESTAMP NULL,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS modules (
        id CHAR(36) PRIMARY KEY,
        title VARCHAR(255) NOT NULL,
        description TEXT,
        thumbnail_url VARCHAR(500),
        bunny_video_guid VARCHAR(100),
        duration_seconds INT DEFAULT 0,
        resources JSON,
        order_index INT NOT NULL DEFAULT 0,
        is_published BOOLEAN DEFAULT FALSE,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP ON UPDATE CURRENT_TIMESTAMP,
        INDEX idx_modules_order (order_index)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS lessons (
        id CHAR(36) PRIMARY KEY,
        module_id CHAR(36) NOT NULL,
        title VARCHAR(255) NOT NULL,
        description TEXT,
        bunny_video_guid VARCHAR(100),
        duration_seconds INT DEFAULT 0,
        resources JSON,
        order_index INT NOT NULL DEFAULT 0,
        is_published BOOLEAN DEFAULT FALSE,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP ON UPDATE CURRENT_TIMESTAMP,
        INDEX idx_lessons_module_order (module_id, order_index),
        FOREIGN KEY (module_id) REFERENCES modules(id) ON DELETE CASCADE
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS enrollments (
        id CHAR(36) PRIMARY KEY,
        user_id CHAR(36) UNIQUE NOT NULL,
        payment_provider ENUM('stripe', 'dlocal', 'manual') NOT NULL,
        payment_id VARCHAR(255),
        payment_status ENUM('pending', 'completed', 'failed', 'refunded') DEFAULT 'pending',
        amount_usd DECIMAL(10, 2) NOT NULL,
        currency VARCHAR(10) NOT NULL,
        amount_local DECIMAL(12, 2),
        payment_method VARCHAR(50),
        country VARCHAR(100),
        enrolled_at TIMESTAMP NULL,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP ON UPDATE CURRENT_TIMESTAMP,
        FOREIGN KEY (user_id) REFERENCES profiles(id) ON DELETE CASCADE
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS module_progress (
        id CHAR(36) PRIMARY KEY,
        user_id CHAR(36) NOT NULL,
        module_id CHAR(36) NOT NULL,
        progress_seconds INT DEFAULT 0,
        completed BOOLEAN DEFAULT FALSE,
        completed_at TIMESTAMP NULL,
        last_watched_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP ON UPDATE CURRENT_TIMESTAMP,
        UNIQUE KEY uq_module_progress (user_id, module_id),
        FOREIGN KEY (user_id) REFERENCES profiles(id) ON DELETE CASCADE,
        FOREIGN KEY (module_id) REFERENCES modules(id) ON DELETE CASCADE
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS lesson_progress (
        id CHAR(36) PRIMARY KEY,
        user_id CHAR(36) NOT NULL,
        lesson_id CHAR(36) NOT NULL,
        progress_seconds INT DEFAULT 0,
        completed BOOLEAN DEFAULT FALSE,
        completed_at TIMESTAMP NULL,
        last_watched_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP ON UPDATE CURRENT_TIMESTAMP,
        UNIQUE KEY uq_lesson_progress (user_id, lesson_id),
        FOREIGN KEY (user_id) REFERENCES profiles(id) ON DELETE CASCADE,
        FOREIGN KEY (lesson_id) REFERENCES lessons(id) ON DELETE CASCADE
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS invitations (
        id CHAR(36) PRIMARY KEY,
        email VARCHAR(255) NOT NULL,
        token CHAR(64) UNIQUE NOT NULL,
        invited_by CHAR(36) NULL,
        accepted_at TIMESTAMP NULL,
        expires_at TIMESTAMP NOT NULL,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        INDEX idx_invitations_email (email),
        FOREIGN KEY (invited_by) REFERENCES profiles(id) ON DELETE SET NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS direct_messages (
        id CHAR(36) PRIMARY KEY,
        student_id CHAR(36) NOT NULL,
        sender_id CHAR(36) NOT NULL,
        message TEXT NOT NULL,
        created_at TIMESTAMP(3) DEFAULT CURRENT_TIMESTAMP(3),
        read_at TIMESTAMP NULL,
        INDEX idx_messages_student (student_id, created_at),
        FOREIGN KEY (student_id) REFERENCES profiles(id) ON DELETE CASCADE,
        FOREIGN KEY (sender_id) REFERENCES profiles(id) ON DELETE CASCADE
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS forum_posts (
        id CHAR(36) PRIMARY KEY,
        user_id CHAR(36) NOT NULL,
        title VARCHAR(200) NOT NULL,
        content TEXT NOT NULL,
        is_answered BOOLEAN DEFAULT FALSE,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP ON UPDATE CURRENT_TIMESTAMP,
        FOREIGN KEY (user_id) REFERENCES profiles(id) ON DELETE CASCADE
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS forum_replies (
        id CHAR(36) PRIMARY KEY,
        post_id CHAR(36) NOT NULL,
        user_id CHAR(36) NOT NULL,
        content TEXT NOT NULL,
        is_admin_reply BOOLEAN DEFAULT FALSE,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        FOREIGN KEY (post_id) REFERENCES forum_posts(id) ON DELETE CASCADE,
        FOREIGN KEY (user_id) REFERENCES profiles(id) ON DELETE CASCADE
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS announcements (
        id CHAR(36) PRIMARY KEY,
        title VARCHAR(255) NOT NULL,
        content TEXT NOT NULL,
        created_by CHAR(36) NOT NULL,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        published_at TIMESTAMP NULL,
        is_active BOOLEAN DEFAULT TRUE,
        FOREIGN KEY (created_by) REFERENCES profiles(id) ON DELETE CASCADE
    )
    """,
]


def create_database_and_tables():
    """Create the development schema. Production schema changes go through alembic."""
    if settings.is_production or not settings.AUTO_CREATE_DB:
        logger.warning("Skipping create_database_and_tables (AUTO_CREATE_DB disabled or production)")
        return False

    with get_db_connection_with_retry() as conn:
        if not conn:
            logger.error("Cannot create tables: no connection available")
            return False

        cursor = conn.cursor()
        try:
            for statement in SCHEMA_STATEMENTS:
                cursor.execute(statement)
            conn.commit()
            logger.info("Database tables created or verified")
            return True
        except Exception as e:
            conn.rollback()
            logger.error(f"Error creating tables: {e}")
            return False
        finally:
            cursor.close()


def check_database_health() -> dict:
    """Ping the database and report status"""
    start = time.time()
    conn = get_mysql_connection()
    if not conn:
        return {"status": "unavailable"}
    try:
        cursor = conn.cursor()
        cursor.execute("SELECT 1")
        cursor.fetchone()
        cursor.close()
        return {"status": "connected", "latency_ms": round((time.time() - start) * 1000, 2)}
    except Exception as e:
        logger.warning(f"Database health check failed: {e}")
        return {"status": "error"}
    finally:
        conn.close()


db_router = APIRouter(prefix="/api", tags=["System"])


@db_router.get("/health")
def health_check():
    """Service health including database reachability"""
    from datetime import datetime, timezone

    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "database": check_database_health(),
    }
