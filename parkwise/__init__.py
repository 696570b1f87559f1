import logging
import os

from flask import Flask, jsonify
from flask_login import LoginManager
from flask_migrate import Migrate
from flask_sqlalchemy import SQLAlchemy
from werkzeug.security import generate_password_hash

from config import Config

db = SQLAlchemy()
migrate = Migrate()

login_manager = LoginManager()


@login_manager.unauthorized_handler
def unauthorized():
    return jsonify({'error': 'Please log in to continue.', 'code': 'unauthorized'}), 401


def configure_logging(app):
    level = getattr(logging, str(app.config.get('LOG_LEVEL', 'INFO')).upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format='%(asctime)s %(levelname)s [%(name)s] %(message)s',
    )
    logging.getLogger('parkwise').setLevel(level)
    app.logger.setLevel(level)


def seed_admin(app):
    from parkwise.models import User

    email = app.config['ADMIN_EMAIL']
    if not User.query.filter_by(email=email).first():
        admin = User(
            email=email,
            full_name='Administrator',
            password=generate_password_hash(app.config['ADMIN_PASSWORD']),
            role='admin',
        )
        db.session.add(admin)
        db.session.commit()
        app.logger.info('Admin user created.')


def create_app(config_class=Config):
    app = Flask(__name__)
    app.config.from_object(config_class)
    configure_logging(app)

    if app.config['SQLALCHEMY_DATABASE_URI'].startswith('sqlite:///'):
        os.makedirs(app.instance_path, exist_ok=True)

    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)

    from parkwise.cli import register_commands
    from parkwise.errors import register_error_handlers
    from parkwise.models import User
    from parkwise.routes.admin_routes import admin_bp
    from parkwise.routes.staff_routes import staff_bp
    from parkwise.routes.user_routes import user_bp

    @login_manager.user_loader
    def load_user(user_id):
        return db.session.get(User, int(user_id))

    app.register_blueprint(admin_bp)
    app.register_blueprint(staff_bp)
    app.register_blueprint(user_bp)
    register_error_handlers(app)
    register_commands(app)

    with app.app_context():
        db.create_all()
        seed_admin(app)

    return app
