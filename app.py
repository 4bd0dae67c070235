import os
import logging

from flask import Flask, jsonify
from flask_cors import CORS
from sqlalchemy import event
from sqlalchemy.engine import Engine
from werkzeug.middleware.proxy_fix import ProxyFix
from extensions import db, login_manager, migrate

# Set up logging
logging.basicConfig(
    level=os.environ.get("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)

PROFILE_PHOTO_MAX_BYTES = 5 * 1024 * 1024

# create the app
app = Flask(__name__)
app.secret_key = os.environ.get("SESSION_SECRET", "manage_booking_secret_key")
app.wsgi_app = ProxyFix(app.wsgi_app, x_proto=1, x_host=1)  # needed for url_for to generate with https

CORS(app, resources={r"/api/*": {"origins": os.environ.get("CORS_ORIGINS", "*")}}, supports_credentials=True)

# Configure the database with fallback
database_url = os.environ.get("DATABASE_URL", "sqlite:///manage_booking.db")

# Fix for Heroku/Render postgres:// URLs (should be postgresql://)
if database_url.startswith("postgres://"):
    database_url = database_url.replace("postgres://", "postgresql://", 1)

app.config["SQLALCHEMY_DATABASE_URI"] = database_url
if database_url.startswith("postgresql"):
    app.config["SQLALCHEMY_ENGINE_OPTIONS"] = {
        "pool_recycle": 300,
        "pool_pre_ping": True,
    }
    logger.info("Configured for PostgreSQL")
else:
    logger.info("Using %s", database_url.split(":", 1)[0])

app.config["SQLALCHEMY_TRACK_MODIFICATIONS"] = False
app.config["JWT_SECRET_KEY"] = os.environ.get("JWT_SECRET_KEY", "manage-booking-jwt-secret")
app.config["JWT_EXPIRES_DAYS"] = int(os.environ.get("JWT_EXPIRES_DAYS", 7))
app.config["UPLOAD_FOLDER"] = os.environ.get(
    "UPLOAD_FOLDER", os.path.join(app.root_path, "static", "uploads", "profiles")
)
# Leave headroom for multipart framing around the photo itself
app.config["MAX_CONTENT_LENGTH"] = PROFILE_PHOTO_MAX_BYTES + 64 * 1024


@event.listens_for(Engine, "connect")
def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    # SQLite ignores foreign keys unless asked
    if type(dbapi_connection).__module__.startswith("sqlite3"):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


# Initialize the extensions
db.init_app(app)
login_manager.init_app(app)
migrate.init_app(app, db)


@login_manager.unauthorized_handler
def unauthorized():
    return jsonify({'success': False, 'message': 'Authentication required'}), 401


@app.errorhandler(413)
def request_too_large(error):
    return jsonify({'success': False, 'message': 'File size must be less than 5MB.'}), 413


with app.app_context():
    # Import the models here so their tables will be created
    import models  # noqa: F401
    db.create_all()

    # Import routes after models to avoid circular imports
    from routes import account_bp
    from api_routes import api_bp
    app.register_blueprint(account_bp)
    app.register_blueprint(api_bp)

if __name__ == "__main__":
    port = int(os.environ.get("PORT", 5000))
    app.run(host="0.0.0.0", port=port, debug=False)
