from flask_sqlalchemy import SQLAlchemy
from flask_login import LoginManager
from flask_migrate import Migrate

# Shared extension instances, bound to the app in app.py
db = SQLAlchemy()
login_manager = LoginManager()
migrate = Migrate()
