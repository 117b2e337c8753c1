from flask import Flask, request
from werkzeug.exceptions import HTTPException
from flask_jwt_extended import JWTManager
from sqlalchemy import create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import StaticPool
from sqlalchemy.orm import sessionmaker, scoped_session
from dotenv import load_dotenv
from datetime import timedelta
from typing import Optional, Dict, Any
import logging
import os

from .errors import StoreError

load_dotenv()

db_engine = None
SessionLocal = None
jwt = JWTManager()


def _error_payload(status: int, title: str, detail: str):
    return {
        'error': {
            'status': status,
            'title': title,
            'detail': detail,
        }
    }, status


def create_app(config: Optional[Dict[str, Any]] = None):
    global db_engine, SessionLocal
    app = Flask(__name__)

    app.config['JWT_SECRET_KEY'] = os.getenv('JWT_SECRET_KEY', 'dev-secret')
    app.config['DATABASE_URL'] = os.getenv('DATABASE_URL', 'sqlite:///dev.db')
    app.config['JWT_ACCESS_TOKEN_EXPIRES'] = timedelta(days=int(os.getenv('JWT_ACCESS_TOKEN_EXPIRES_DAYS', '30')))
    app.config['LOG_LEVEL'] = os.getenv('LOG_LEVEL', 'INFO')
    app.config['ORDERS_DEFAULT_LIMIT'] = int(os.getenv('ORDERS_DEFAULT_LIMIT', '10'))
    app.config['ORDERS_MAX_LIMIT'] = int(os.getenv('ORDERS_MAX_LIMIT', '100'))

    if config:
        # allow tests or callers to override default config values
        app.config.update(config)

    logging.basicConfig(level=app.config['LOG_LEVEL'])
    app.logger.setLevel(app.config['LOG_LEVEL'])

    # Database
    db_url = app.config['DATABASE_URL']
    if db_url.endswith(':memory:'):
        # Ensure a single shared in-memory SQLite database across all sessions
        db_engine = create_engine(
            db_url,
            echo=False,
            future=True,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    else:
        db_engine = create_engine(db_url, echo=False, future=True)
    SessionLocal = scoped_session(sessionmaker(bind=db_engine, expire_on_commit=False, autoflush=False))

    jwt.init_app(app)

    @jwt.unauthorized_loader
    def _missing_token(reason: str):
        return _error_payload(401, 'Unauthorized', reason)

    @jwt.invalid_token_loader
    def _invalid_token(reason: str):
        return _error_payload(401, 'Unauthorized', reason)

    @jwt.expired_token_loader
    def _expired_token(jwt_header, jwt_payload):
        return _error_payload(401, 'Unauthorized', 'Token has expired')

    from .routes.auth import auth_bp  # login / session
    from .routes.repairs import rpr_bp  # repair orders and item workflow
    from .routes.workers import workers_bp  # worker roster
    app.register_blueprint(auth_bp, url_prefix='/auth')
    app.register_blueprint(rpr_bp, url_prefix='/repairs')
    app.register_blueprint(workers_bp, url_prefix='/workers')

    @app.before_request
    def _fresh_session():
        # One long-lived scoped session per thread; reload rows changed by earlier requests
        get_db().expire_all()

    @app.route('/healthz')
    def health():
        return {'status': 'ok'}

    # Unified error handler producing standardized JSON shape
    @app.errorhandler(Exception)
    def handle_errors(e):  # type: ignore
        # Drop anything a rejected command may have staged
        get_db().rollback()
        if isinstance(e, HTTPException):
            app.logger.debug('Rejected %s %s: %s', request.method, request.path, e.description)
            return _error_payload(e.code, e.name, e.description)
        if isinstance(e, SQLAlchemyError):
            app.logger.warning('Store error: %s', e)
            err = StoreError(description=str(getattr(e, 'orig', None) or e))
            return _error_payload(err.code, err.name, err.description)
        # Unhandled exception
        app.logger.exception('Unhandled exception')
        return _error_payload(500, 'Internal Server Error', 'Unexpected error')

    return app


def get_db():
    return SessionLocal()
