from flask_cors import CORS
from flask_login import LoginManager
from flask_migrate import Migrate
from flask_socketio import SocketIO
from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
migrate = Migrate()
cors = CORS()
login_manager = LoginManager()

# Realtime push for payment status changes. async_mode="threading" keeps the
# WSGI app usable without eventlet/gevent installed.
socketio = SocketIO(async_mode="threading")
